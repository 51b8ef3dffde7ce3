"""Defined skills API route - the catalogue offered when adding a skill to a batch."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assessment_batches.database import get_db
from assessment_batches.models.defined_skill import DefinedSkill

router = APIRouter()


@router.get("/api/skills")
def list_defined_skills(db: Session = Depends(get_db)):
    skills = db.query(DefinedSkill).order_by(DefinedSkill.name).all()
    return {
        "data": [
            {"id": s.id, "name": s.name, "max_score": float(s.max_score)}
            for s in skills
        ]
    }
