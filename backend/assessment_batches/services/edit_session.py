"""
Batch Edit Session - in-memory editing of a loaded batch.

The session owns a working copy of the batch records plus the batch skill
schema. Every operation either applies completely or raises an
EditValidationError and leaves the working copy untouched. After any
successful edit each touched record satisfies
total_score == sum(skill scores).

Score input is permissive: the leading number of the raw value is used
("7.5pts" -> 7.5) and anything without one counts as 0.
"""

import math
import re
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Dict, List, Optional

from assessment_batches.config import SESSION_IDLE_TTL_SECONDS, SESSION_MAX_OPEN
from assessment_batches.errors import (
    DuplicateSkillError, NegativeScoreError, PermissionDeniedError,
    ScoreExceedsMaxError, SessionBusyError, SessionNotFoundError,
    UnknownRecordError, UnknownSkillError
)
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import AssessmentRecord, SkillDefinition, SkillScore
from assessment_batches.services.detail_loader import BatchDetail

logger = get_logger("edits")

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def parse_score(raw_value) -> float:
    """Parse a score the way a browser's parseFloat would; non-numeric becomes 0."""
    if isinstance(raw_value, bool) or raw_value is None:
        return 0.0
    if isinstance(raw_value, (int, float)):
        value = float(raw_value)
    else:
        match = _LEADING_NUMBER.match(str(raw_value))
        if not match:
            return 0.0
        value = float(match.group(0))
    if math.isnan(value):
        return 0.0
    return value


class BatchEditSession:
    """
    Working set for one batch.

    Edits and commits are serialised by a per-session lock that is never
    waited on: an operation that finds it held raises SessionBusyError.
    `commit_in_flight` is set while the committer holds the lock; while it
    is set every edit raises SessionBusyError.
    """

    def __init__(self, detail: BatchDetail, can_edit: bool = True):
        self.id = str(uuid.uuid4())
        self.can_edit = can_edit
        self.commit_in_flight = False
        self.last_used = time.monotonic()
        self._lock = threading.Lock()
        self._reset(detail)

    def _reset(self, detail: BatchDetail):
        self.detail = detail
        self.schema: List[SkillDefinition] = [s.model_copy() for s in detail.skill_schema]
        self.working_records: List[AssessmentRecord] = detail.working_copy()
        self.dirty = False

    @property
    def key(self) -> str:
        return self.detail.key

    @property
    def max_scores(self) -> Dict[str, float]:
        return {s.name: s.max_score for s in self.schema}

    @property
    def skill_names(self) -> List[str]:
        return [s.name for s in self.schema]

    # ── Locking ───────────────────────────────────────────────

    @contextmanager
    def _exclusive(self):
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("Another change is being applied to this batch")
        try:
            if self.commit_in_flight:
                raise SessionBusyError("A commit is in progress for this batch")
            yield
        finally:
            self._lock.release()

    @contextmanager
    def _editing(self):
        self._check_editable()
        with self._exclusive():
            yield

    @contextmanager
    def committing(self):
        """Hold the session for a commit; edits and other commits are refused meanwhile."""
        with self._exclusive():
            self.commit_in_flight = True
            try:
                yield
            finally:
                self.commit_in_flight = False

    def _check_editable(self):
        if not self.can_edit:
            raise PermissionDeniedError("Editing assessments requires the edit capability")
        if self.commit_in_flight:
            raise SessionBusyError("A commit is in progress for this batch")

    def _record(self, record_id: str) -> AssessmentRecord:
        for record in self.working_records:
            if record.id == record_id:
                return record
        raise UnknownRecordError(record_id)

    # ── Edits ─────────────────────────────────────────────────

    def set_score(self, record_id: str, skill_name: str, raw_value) -> AssessmentRecord:
        """Set one skill score on one record and recompute that record's total."""
        with self._editing():
            record = self._record(record_id)
            max_scores = self.max_scores
            if skill_name not in max_scores:
                raise UnknownSkillError(skill_name)

            score = parse_score(raw_value)
            max_score = max_scores[skill_name]
            if score > max_score:
                log_with_context(logger, "DEBUG", "Rejected score above max",
                                 context={"session_id": self.id, "record_id": record_id},
                                 extra_data={"skill": skill_name, "score": score, "max_score": max_score})
                raise ScoreExceedsMaxError(skill_name, max_score, score)
            if score < 0:
                raise NegativeScoreError(skill_name, score)

            entry = record.skill(skill_name)
            if entry is None:
                # Record diverged from the batch schema; give it the column
                record.skills.append(SkillScore(name=skill_name, score=score, max_score=max_score))
            else:
                entry.score = score
                entry.max_score = max_score
            record.recompute_total()
            self.dirty = True
            return record

    def add_skill(self, definition: SkillDefinition):
        """
        Append a skill column to the schema and to every working record with score 0.

        A diverged record that already carries a skill of that name keeps its
        score but takes the new max score; if its score is above the new max
        the whole operation is rejected.
        """
        with self._editing():
            if definition.name in self.max_scores:
                raise DuplicateSkillError(definition.name)
            for record in self.working_records:
                entry = record.skill(definition.name)
                if entry is not None and entry.score > definition.max_score:
                    raise ScoreExceedsMaxError(definition.name, definition.max_score, entry.score)

            self.schema.append(SkillDefinition(name=definition.name, max_score=definition.max_score))
            realigned = []
            for record in self.working_records:
                entry = record.skill(definition.name)
                if entry is None:
                    record.skills.append(SkillScore(name=definition.name, score=0,
                                                    max_score=definition.max_score))
                elif entry.max_score != definition.max_score:
                    entry.max_score = definition.max_score
                    realigned.append(record.id)
                record.recompute_total()
            self.dirty = True

        if realigned:
            log_with_context(logger, "WARNING",
                             "Existing '{}' entries took the new max score".format(definition.name),
                             context={"session_id": self.id, "batch_key": self.key},
                             extra_data={"record_ids": realigned})
        log_with_context(logger, "INFO", "Added skill '{}' to batch".format(definition.name),
                         context={"session_id": self.id, "batch_key": self.key},
                         extra_data={"max_score": definition.max_score,
                                     "records": len(self.working_records)})

    def remove_skill(self, skill_name: str):
        """Drop a skill column from the schema and every record; recompute all totals."""
        with self._editing():
            if skill_name not in self.max_scores:
                raise UnknownSkillError(skill_name)

            self.schema = [s for s in self.schema if s.name != skill_name]
            for record in self.working_records:
                record.skills = [s for s in record.skills if s.name != skill_name]
                record.recompute_total()
            self.dirty = True

        log_with_context(logger, "INFO", "Removed skill '{}' from batch".format(skill_name),
                         context={"session_id": self.id, "batch_key": self.key})

    def discard(self):
        """Throw away all edits: working set becomes a fresh copy of the loaded set."""
        with self._exclusive():
            self._reset(self.detail)

    def reload(self, detail: BatchDetail):
        """Replace the loaded set (after a successful commit) and reset the working copy."""
        self._reset(detail)

    def average_score(self, editing: bool = True) -> float:
        """Mean display total over the visible records (absent students count as 0)."""
        records = self.working_records if editing else list(self.detail.loaded)
        if not records:
            return 0.0
        return sum(r.display_total for r in records) / len(records)

    def to_dict(self) -> dict:
        return {
            "session_id": self.id,
            "batch_key": self.key,
            "title": self.detail.title,
            "date": self.detail.date.isoformat(),
            "dirty": self.dirty,
            "commit_in_flight": self.commit_in_flight,
            "schema": [s.model_dump() for s in self.schema],
            "schema_mismatches": list(self.detail.schema_mismatches),
            "average_score": round(self.average_score(), 2),
            "records": [
                {**r.model_dump(mode="json"), "display_total": r.display_total}
                for r in self.working_records
            ],
        }


class SessionRegistry:
    """
    Open edit sessions by id, shared across request threads.

    Sessions idle for longer than `idle_ttl` seconds are dropped, and when
    more than `max_sessions` are open the least recently used are dropped.
    A session with a commit in flight is never dropped. Eviction runs on
    every open and get.
    """

    def __init__(self, idle_ttl: float = SESSION_IDLE_TTL_SECONDS,
                 max_sessions: int = SESSION_MAX_OPEN, clock=time.monotonic):
        self.idle_ttl = idle_ttl
        self.max_sessions = max(1, max_sessions)
        self._clock = clock
        self._sessions: Dict[str, BatchEditSession] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def _evict(self, now: float, room: int = 0) -> List[str]:
        """Drop expired and surplus sessions; the caller holds the lock."""
        evictable = [s for s in self._sessions.values() if not s.commit_in_flight]
        doomed = [s.id for s in evictable if now - s.last_used > self.idle_ttl]

        surplus = len(self._sessions) - len(doomed) + room - self.max_sessions
        if surplus > 0:
            remaining = sorted((s for s in evictable if s.id not in doomed),
                               key=lambda s: s.last_used)
            doomed.extend(s.id for s in remaining[:surplus])

        for session_id in doomed:
            del self._sessions[session_id]
        return doomed

    def _log_evicted(self, evicted: List[str]):
        if evicted:
            log_with_context(logger, "INFO", "Dropped {} idle edit sessions".format(len(evicted)),
                             extra_data={"session_ids": evicted})

    def open(self, detail: BatchDetail, can_edit: bool) -> BatchEditSession:
        session = BatchEditSession(detail, can_edit=can_edit)
        with self._lock:
            now = self._clock()
            evicted = self._evict(now, room=1)
            session.last_used = now
            self._sessions[session.id] = session
        self._log_evicted(evicted)
        log_with_context(logger, "INFO", "Opened edit session",
                         context={"session_id": session.id, "batch_key": session.key})
        return session

    def get(self, session_id: str) -> BatchEditSession:
        with self._lock:
            now = self._clock()
            evicted = self._evict(now)
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_used = now
        self._log_evicted(evicted)
        if session is None:
            raise SessionNotFoundError(f"Edit session not found: {session_id}")
        return session

    def close(self, session_id: str) -> Optional[BatchEditSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def clear(self):
        with self._lock:
            self._sessions.clear()


registry = SessionRegistry()
