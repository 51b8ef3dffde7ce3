"""
Edit session API routes - structural and score editing of one batch.

A session is opened on a (title, date) batch and holds a working copy of
its records until it is committed, discarded or closed. The caller's edit
capability is resolved when the session is opened.
"""

import datetime as dt
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from assessment_batches.capabilities import Capabilities, get_capabilities
from assessment_batches.database import get_db
from assessment_batches.errors import BatchError, InvalidSkillDefinitionError
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.models.defined_skill import DefinedSkill
from assessment_batches.routes.batches import get_registry
from assessment_batches.routes.common import http_error
from assessment_batches.schemas import SkillDefinition
from assessment_batches.services.committer import commit_session
from assessment_batches.services.detail_loader import load_batch
from assessment_batches.services.edit_session import SessionRegistry
from assessment_batches.store import RecordStore, get_store

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class OpenSessionRequest(BaseModel):
    title: str
    date: dt.date


class ScoreChangeRequest(BaseModel):
    record_id: str
    skill_name: str
    value: Union[float, str, None] = None


class AddSkillRequest(BaseModel):
    """Either a catalogue skill id or an explicit name and max score."""
    defined_skill_id: Optional[int] = None
    name: Optional[str] = None
    max_score: Optional[float] = None


def _definition(request: AddSkillRequest, db: Session) -> SkillDefinition:
    if request.defined_skill_id is not None:
        skill = db.query(DefinedSkill).filter(DefinedSkill.id == request.defined_skill_id).first()
        if not skill:
            raise HTTPException(status_code=404, detail="Skill not found")
        return SkillDefinition(name=skill.name, max_score=skill.max_score)
    if request.name is None or request.max_score is None:
        raise http_error(InvalidSkillDefinitionError("Provide defined_skill_id or name and max_score"))
    try:
        return SkillDefinition(name=request.name, max_score=request.max_score)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/api/sessions", status_code=201)
def open_session(
    request: OpenSessionRequest,
    store: RecordStore = Depends(get_store),
    capabilities: Capabilities = Depends(get_capabilities),
    sessions: SessionRegistry = Depends(get_registry)
):
    """Load a batch and open an edit session on it."""
    try:
        detail = load_batch(store, request.title, request.date)
    except BatchError as e:
        raise http_error(e)
    if not detail.found:
        raise HTTPException(status_code=404, detail="Batch not found")

    session = sessions.open(detail, can_edit=capabilities.can_edit)
    return session.to_dict()


@router.get("/api/sessions/{session_id}")
def get_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    try:
        return sessions.get(session_id).to_dict()
    except BatchError as e:
        raise http_error(e)


@router.put("/api/sessions/{session_id}/scores")
def change_score(session_id: str, request: ScoreChangeRequest,
                 sessions: SessionRegistry = Depends(get_registry)):
    """Set one score; rejected when above the skill's max score."""
    try:
        session = sessions.get(session_id)
        record = session.set_score(request.record_id, request.skill_name, request.value)
    except BatchError as e:
        raise http_error(e)
    return {
        "record": {**record.model_dump(mode="json"), "display_total": record.display_total},
        "dirty": session.dirty
    }


@router.post("/api/sessions/{session_id}/skills")
def add_skill(session_id: str, request: AddSkillRequest,
              db: Session = Depends(get_db),
              sessions: SessionRegistry = Depends(get_registry)):
    """Add a skill column to every record of the batch."""
    try:
        session = sessions.get(session_id)
        session.add_skill(_definition(request, db))
    except BatchError as e:
        raise http_error(e)
    return session.to_dict()


@router.delete("/api/sessions/{session_id}/skills/{skill_name}")
def remove_skill(session_id: str, skill_name: str,
                 sessions: SessionRegistry = Depends(get_registry)):
    """Remove a skill column from every record of the batch."""
    try:
        session = sessions.get(session_id)
        session.remove_skill(skill_name)
    except BatchError as e:
        raise http_error(e)
    return session.to_dict()


@router.post("/api/sessions/{session_id}/discard")
def discard_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    try:
        session = sessions.get(session_id)
        session.discard()
    except BatchError as e:
        raise http_error(e)
    return session.to_dict()


@router.post("/api/sessions/{session_id}/commit")
def commit(session_id: str, store: RecordStore = Depends(get_store),
           sessions: SessionRegistry = Depends(get_registry)):
    """
    Save the working set. The response lists which records were saved and
    which failed; on full success the session holds the freshly reloaded batch.
    """
    try:
        session = sessions.get(session_id)
        result = commit_session(session, store)
    except BatchError as e:
        raise http_error(e)

    log_with_context(logger, "INFO", "Commit requested for session",
                     context={"session_id": session_id},
                     extra_data={"success": result.success, "failed": len(result.failed)})
    return {
        "success": result.success,
        "message": "Updated" if result.success else "Failed to save changes",
        "atomic": result.atomic,
        "succeeded_ids": result.succeeded_ids,
        "failed": [f.model_dump() for f in result.failed],
        "session": session.to_dict()
    }


@router.delete("/api/sessions/{session_id}")
def close_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    session = sessions.close(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Edit session not found")
    return {"session_id": session_id, "closed": True, "discarded_changes": session.dirty}
