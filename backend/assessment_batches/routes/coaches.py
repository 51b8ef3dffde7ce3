"""
Coaches API route - the options for the assessing-coach filter.

Staff rows that are not coaches (admin, reception, cleaning staff) live in
the same table; they are left out when either the role or the name
mentions one of those words.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assessment_batches.database import get_db
from assessment_batches.models.coach import Coach

router = APIRouter()

# "reciption" is a misspelling that exists in real role data
NON_COACH_MARKERS = ("admin", "reception", "reciption", "cleaner")


def is_assessing_coach(coach: Coach) -> bool:
    role = (coach.role or "").lower()
    name = (coach.full_name or "").lower()
    return not any(marker in role or marker in name for marker in NON_COACH_MARKERS)


@router.get("/api/coaches")
def list_coaches(db: Session = Depends(get_db)):
    """Coaches that can appear as assessing coach, ordered by name."""
    coaches = db.query(Coach).order_by(Coach.full_name).all()
    return {
        "data": [
            {"id": c.id, "full_name": c.full_name, "role": c.role}
            for c in coaches if is_assessing_coach(c)
        ]
    }
