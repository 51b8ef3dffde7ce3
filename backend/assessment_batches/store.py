"""
Record store adapter for the skill_assessments table.

The engine talks to persistence only through RecordStore: predicate queries,
partial updates by id and predicate deletes. SqlRecordStore is the
SQLAlchemy implementation; it also supports a single transactional
multi-row update, which the committer prefers when available.
"""

import json
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from assessment_batches.database import get_db
from assessment_batches.errors import StoreError, StaleRecordError, RecordNotFoundError
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.models.skill_assessment import SkillAssessment
from assessment_batches.models.student import Student
from assessment_batches.schemas import AssessmentRecord, RecordFilter, SkillScore

logger = get_logger("db")

WRITABLE_FIELDS = ("skills", "total_score")


class RecordUpdate(BaseModel):
    """One row of a multi-record update."""
    record_id: str
    fields: Dict
    expected_version: Optional[int] = None


class RecordStore(ABC):
    """Query/update/delete access to assessment records."""

    supports_transactions = False

    @abstractmethod
    def query_records(self, record_filter: RecordFilter) -> List[AssessmentRecord]:
        ...

    @abstractmethod
    def update_record(self, record_id: str, fields: dict,
                      expected_version: Optional[int] = None) -> Optional[int]:
        """Apply a partial update; returns the stored version afterwards when known."""
        ...

    def update_records(self, updates: List[RecordUpdate]) -> Dict[str, int]:
        """Apply every update in one transaction; returns the new version per record id."""
        raise NotImplementedError("This store has no multi-row transactions")

    @abstractmethod
    def delete_records(self, record_filter: RecordFilter) -> int:
        ...


def row_to_record(row: SkillAssessment) -> AssessmentRecord:
    """Convert an ORM row (with student/coach loaded) into an AssessmentRecord."""
    student = row.student
    responsible = student.coach if student else None
    return AssessmentRecord(
        id=str(row.id),
        student_id=str(row.student_id),
        coach_id=str(row.coach_id) if row.coach_id else None,
        title=row.title,
        date=row.date,
        status=row.status or "normal",
        skills=[SkillScore(**s) for s in row.skills_list],
        total_score=float(row.total_score or 0),
        version=row.version or 1,
        student_name=student.full_name if student else None,
        assessing_coach_name=row.coach.full_name if row.coach else None,
        responsible_coach_name=responsible.full_name if responsible else None,
    )


def _serialize_skills(skills) -> str:
    items = []
    for entry in skills:
        if isinstance(entry, SkillScore):
            entry = entry.model_dump()
        items.append({"name": entry["name"], "score": entry["score"], "max_score": entry["max_score"]})
    return json.dumps(items)


class SqlRecordStore(RecordStore):
    """RecordStore backed by a SQLAlchemy session."""

    supports_transactions = True

    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, query, record_filter: RecordFilter):
        if record_filter.id is not None:
            query = query.filter(SkillAssessment.id == record_filter.id)
        if record_filter.title is not None:
            query = query.filter(SkillAssessment.title == record_filter.title)
        if record_filter.date is not None:
            query = query.filter(SkillAssessment.date == record_filter.date)
        if record_filter.assessing_coach_id is not None:
            query = query.filter(SkillAssessment.coach_id == record_filter.assessing_coach_id)
        if record_filter.student_id is not None:
            query = query.filter(SkillAssessment.student_id == record_filter.student_id)
        if record_filter.student_ids is not None:
            query = query.filter(SkillAssessment.student_id.in_(record_filter.student_ids))
        if record_filter.student_id_min is not None:
            query = query.filter(SkillAssessment.student_id >= record_filter.student_id_min)
        if record_filter.student_id_max is not None:
            query = query.filter(SkillAssessment.student_id <= record_filter.student_id_max)
        return query

    def query_records(self, record_filter: RecordFilter) -> List[AssessmentRecord]:
        start_time = time.time()
        query = self.db.query(SkillAssessment).options(
            joinedload(SkillAssessment.student).joinedload(Student.coach),
            joinedload(SkillAssessment.coach)
        )
        try:
            rows = self._filtered(query, record_filter).order_by(SkillAssessment.id).all()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "DEBUG", "Queried {} assessment records".format(len(rows)),
                         extra_data={"filter": record_filter.model_dump(exclude_none=True),
                                     "duration_ms": round(duration_ms, 2)})
        return [row_to_record(row) for row in rows]

    def _apply(self, record_id: str, fields: dict, expected_version: Optional[int]):
        unknown = set(fields) - set(WRITABLE_FIELDS)
        if unknown:
            raise StoreError("Unsupported fields: {}".format(", ".join(sorted(unknown))))

        row = self.db.query(SkillAssessment).filter(SkillAssessment.id == record_id).first()
        if not row:
            raise RecordNotFoundError(record_id)
        if expected_version is not None and row.version != expected_version:
            raise StaleRecordError(record_id, expected_version, row.version)

        if "skills" in fields:
            row.skills = _serialize_skills(fields["skills"])
        if "total_score" in fields:
            row.total_score = float(fields["total_score"])
        row.version = (row.version or 1) + 1
        row.updated_at = datetime.now(timezone.utc)
        return row.version

    def update_record(self, record_id: str, fields: dict,
                      expected_version: Optional[int] = None) -> Optional[int]:
        try:
            version = self._apply(record_id, fields, expected_version)
            self.db.commit()
        except StoreError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(str(e)) from e

        log_with_context(logger, "DEBUG", "Updated assessment record",
                         context={"record_id": record_id},
                         extra_data={"fields": sorted(fields)})
        return version

    def update_records(self, updates: List[RecordUpdate]) -> Dict[str, int]:
        versions = {}
        try:
            for update in updates:
                versions[update.record_id] = self._apply(update.record_id, update.fields,
                                                         update.expected_version)
            self.db.commit()
        except StoreError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(str(e)) from e

        log_with_context(logger, "INFO", "Updated {} assessment records in one transaction".format(len(updates)))
        return versions

    def delete_records(self, record_filter: RecordFilter) -> int:
        if record_filter.is_empty():
            raise StoreError("Refusing to delete without a predicate")
        try:
            deleted = self._filtered(self.db.query(SkillAssessment), record_filter).delete(
                synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(str(e)) from e

        log_with_context(logger, "INFO", "Deleted {} assessment records".format(deleted),
                         extra_data={"filter": record_filter.model_dump(exclude_none=True)})
        return deleted


def get_store(db: Session = Depends(get_db)) -> RecordStore:
    """FastAPI dependency providing the SQL-backed record store."""
    return SqlRecordStore(db)
