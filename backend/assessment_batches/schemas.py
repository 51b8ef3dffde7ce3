"""
Pydantic schemas shared by the services and the HTTP routes.

AssessmentRecord is the engine's in-memory view of one skill_assessments row,
joined with the display names the UI needs. Batch-level types (BatchKey,
BatchSummary) and the structured results of multi-record writes live here
too.
"""

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATUS_NORMAL = "normal"
STATUS_ABSENT = "absent"


class SkillScore(BaseModel):
    """One evaluated skill inside an assessment record."""
    name: str
    score: float = 0
    max_score: float = 10


class SkillDefinition(BaseModel):
    """A skill column of a batch: name plus its maximum score."""
    name: str = Field(..., min_length=1)
    max_score: float = Field(..., gt=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Skill name cannot be empty")
        return value


class AssessmentRecord(BaseModel):
    """One student's performance on one assessment occasion."""
    id: str
    student_id: str
    coach_id: Optional[str] = None
    title: str
    date: dt.date
    status: Literal["normal", "absent"] = STATUS_NORMAL
    skills: List[SkillScore] = Field(default_factory=list)
    total_score: float = 0
    version: int = 1

    # Joined display fields (read-only, never written back)
    student_name: Optional[str] = None
    assessing_coach_name: Optional[str] = None
    responsible_coach_name: Optional[str] = None

    @property
    def is_absent(self) -> bool:
        return self.status == STATUS_ABSENT

    @property
    def display_total(self) -> float:
        """Total shown on screen: absent students always show 0."""
        return 0 if self.is_absent else self.total_score

    def skill(self, name: str) -> Optional[SkillScore]:
        for entry in self.skills:
            if entry.name == name:
                return entry
        return None

    def recompute_total(self):
        self.total_score = sum(entry.score or 0 for entry in self.skills)


class RecordFilter(BaseModel):
    """Predicate accepted by RecordStore.query_records and delete_records."""
    id: Optional[str] = None
    title: Optional[str] = None
    date: Optional[dt.date] = None
    assessing_coach_id: Optional[str] = None
    student_id: Optional[str] = None
    student_ids: Optional[List[str]] = None
    student_id_min: Optional[str] = None
    student_id_max: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(v is not None for v in self.model_dump().values())


class BatchKey(BaseModel):
    """Composite identity of a batch."""
    model_config = ConfigDict(frozen=True)

    title: str
    date: dt.date

    @property
    def key(self) -> str:
        return make_batch_key(self.title, self.date)


def make_batch_key(title: str, date: dt.date) -> str:
    return f"{title}-{date.isoformat()}"


def parse_batch_key(key: str) -> BatchKey:
    """
    Split a "<title>-<YYYY-MM-DD>" key back into its parts.

    The date is always the trailing ten characters, so titles may contain
    dashes themselves.
    """
    if len(key) < 12 or key[-11] != "-":
        raise ValueError(f"Malformed batch key: {key!r}")
    try:
        date = dt.date.fromisoformat(key[-10:])
    except ValueError:
        raise ValueError(f"Malformed batch key: {key!r}")
    return BatchKey(title=key[:-11], date=date)


class BatchSummary(BaseModel):
    """Aggregated view of one batch, as listed in the assessment history."""
    key: str
    title: str
    date: dt.date
    assessing_coach: Optional[str] = None
    assessing_coach_id: Optional[str] = None
    responsible_coach: Optional[str] = None
    count: int = 0
    scored_count: int = 0
    total_score_sum: float = 0
    average_score: float = 0
    ids: List[str] = Field(default_factory=list)


class RecordFailure(BaseModel):
    record_id: str
    reason: str


class CommitResult(BaseModel):
    """Per-record outcome of writing a working set back to the store."""
    succeeded_ids: List[str] = Field(default_factory=list)
    failed: List[RecordFailure] = Field(default_factory=list)
    atomic: bool = False

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def failed_ids(self) -> List[str]:
        return [f.record_id for f in self.failed]


class BatchDeleteOutcome(BaseModel):
    key: str
    title: str
    date: dt.date
    success: bool
    deleted_count: int = 0
    error: Optional[str] = None


class BulkDeleteResult(BaseModel):
    success: bool
    outcomes: List[BatchDeleteOutcome] = Field(default_factory=list)

    @property
    def failed_keys(self) -> List[str]:
        return [o.key for o in self.outcomes if not o.success]
