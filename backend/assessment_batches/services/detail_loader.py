"""
Batch Detail Loader - fetches one batch and derives its skill schema.

The schema (ordered skill names and their max scores) is read from the
batch's first record, the one with the lowest id. Members whose skill names
or max scores differ from that schema are reported in schema_mismatches and
logged; they are not corrected here.
"""

import datetime as dt
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field

from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import (
    AssessmentRecord, RecordFilter, SkillDefinition, make_batch_key
)
from assessment_batches.store import RecordStore

logger = get_logger("batches")


class BatchDetail(BaseModel):
    """A loaded batch. `loaded` is the last-persisted state and is never edited."""
    title: str
    date: dt.date
    found: bool = False
    loaded: Tuple[AssessmentRecord, ...] = ()
    skill_schema: List[SkillDefinition] = Field(default_factory=list)
    schema_mismatches: List[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return make_batch_key(self.title, self.date)

    @property
    def skill_names(self) -> List[str]:
        return [s.name for s in self.skill_schema]

    @property
    def max_scores(self) -> Dict[str, float]:
        return {s.name: s.max_score for s in self.skill_schema}

    @property
    def responsible_coach(self):
        return self.loaded[0].responsible_coach_name if self.loaded else None

    @property
    def assessing_coach(self):
        return self.loaded[0].assessing_coach_name if self.loaded else None

    def working_copy(self) -> List[AssessmentRecord]:
        """Fresh deep copy of the loaded records for editing."""
        return [record.model_copy(deep=True) for record in self.loaded]


def derive_schema(first: AssessmentRecord) -> List[SkillDefinition]:
    return [SkillDefinition(name=s.name, max_score=s.max_score) for s in first.skills]


def find_schema_mismatches(records, schema: List[SkillDefinition]) -> List[str]:
    """Ids of records whose (name, max_score) sequence differs from the schema."""
    expected = [(s.name, s.max_score) for s in schema]
    return [
        r.id for r in records
        if [(s.name, s.max_score) for s in r.skills] != expected
    ]


def load_batch(store: RecordStore, title: str, date: dt.date) -> BatchDetail:
    """Load every record of the (title, date) batch. Empty batches are not an error."""
    records = sorted(store.query_records(RecordFilter(title=title, date=date)), key=lambda r: r.id)
    key = make_batch_key(title, date)

    if not records:
        log_with_context(logger, "WARNING", "No records found for batch",
                         context={"batch_key": key})
        return BatchDetail(title=title, date=date, found=False)

    schema = derive_schema(records[0])
    mismatches = find_schema_mismatches(records, schema)
    if mismatches:
        log_with_context(logger, "WARNING",
            "{} of {} records diverge from the batch skill schema".format(len(mismatches), len(records)),
            context={"batch_key": key},
            extra_data={"record_ids": mismatches})

    log_with_context(logger, "INFO", "Loaded batch with {} records and {} skills".format(
        len(records), len(schema)), context={"batch_key": key})

    return BatchDetail(
        title=title,
        date=date,
        found=True,
        loaded=tuple(records),
        skill_schema=schema,
        schema_mismatches=mismatches,
    )
