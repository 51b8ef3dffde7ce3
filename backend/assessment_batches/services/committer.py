"""
Batch Persistence Committer - writes an edited working set back to the store.

Only `skills` and `total_score` are written, keyed by record id.

Stores with multi-row transactions get a single atomic write: every record
succeeds or every record fails. Otherwise records are written one by one,
in order, each retried with exponential backoff on transient store errors.
A failure of any kind never stops the loop. A reconciliation pass then
re-reads the records reported as written and demotes any whose stored
values differ.
"""

import time
from typing import List, Optional

from assessment_batches.config import (
    COMMIT_BACKOFF_SECONDS, COMMIT_CHECK_VERSIONS, COMMIT_MAX_ATTEMPTS
)
from assessment_batches.errors import (
    PermissionDeniedError, StaleRecordError, RecordNotFoundError, StoreError
)
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import AssessmentRecord, CommitResult, RecordFailure, RecordFilter
from assessment_batches.services.detail_loader import load_batch
from assessment_batches.services.edit_session import BatchEditSession
from assessment_batches.store import RecordStore, RecordUpdate

logger = get_logger("commit")

# Errors that retrying cannot fix
PERMANENT_ERRORS = (StaleRecordError, RecordNotFoundError)


def _fields(record: AssessmentRecord) -> dict:
    return {
        "skills": [s.model_dump() for s in record.skills],
        "total_score": record.total_score,
    }


def _reason(error: Exception) -> str:
    if isinstance(error, StoreError):
        return str(error)
    return "{}: {}".format(type(error).__name__, error)


def _matches(stored: AssessmentRecord, wanted: AssessmentRecord) -> bool:
    stored_skills = [(s.name, s.score, s.max_score) for s in stored.skills]
    wanted_skills = [(s.name, s.score, s.max_score) for s in wanted.skills]
    return stored_skills == wanted_skills and stored.total_score == wanted.total_score


def _landed_version(store: RecordStore, record: AssessmentRecord) -> Optional[int]:
    """Stored version when the store already holds exactly this record's values."""
    stored = store.query_records(RecordFilter(id=record.id))
    if stored and _matches(stored[0], record):
        return stored[0].version
    return None


def _update_with_retry(store: RecordStore, record: AssessmentRecord, max_attempts: int,
                       backoff_seconds: float, check_versions: bool, sleep=time.sleep) -> Optional[int]:
    """
    Write one record, retrying transient store errors with exponential backoff.

    A failed attempt may still have landed. If a retry then sees a version
    conflict, the stored row is compared with the record: an exact match
    counts as written.
    """
    expected_version = record.version if check_versions else None
    attempt = 1
    while True:
        try:
            return store.update_record(record.id, _fields(record), expected_version=expected_version)
        except StaleRecordError:
            if attempt > 1:
                landed = _landed_version(store, record)
                if landed is not None:
                    log_with_context(logger, "INFO", "Earlier attempt had already been written",
                                     context={"record_id": record.id},
                                     extra_data={"attempts": attempt})
                    return landed
            raise
        except RecordNotFoundError:
            raise
        except StoreError as e:
            if attempt >= max_attempts:
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            log_with_context(logger, "WARNING",
                "Update failed (attempt {}/{}), retrying in {:.2f}s: {}".format(
                    attempt, max_attempts, delay, e),
                context={"record_id": record.id})
            sleep(delay)
            attempt += 1


def _reconcile(store: RecordStore, records: List[AssessmentRecord],
               result: CommitResult) -> CommitResult:
    """
    Re-read every record reported as written and demote the ones that do not match.

    Confirmed records take the stored version, so a later commit of the
    same working set passes the version check.
    """
    wanted = {r.id: r for r in records}
    confirmed = []
    for record_id in result.succeeded_ids:
        try:
            stored = store.query_records(RecordFilter(id=record_id))
        except Exception as e:
            log_with_context(logger, "ERROR", "Could not verify write",
                             context={"record_id": record_id}, exc_info=True)
            result.failed.append(RecordFailure(record_id=record_id,
                                               reason="Could not verify write: {}".format(_reason(e))))
            continue
        if not stored:
            result.failed.append(RecordFailure(record_id=record_id,
                                               reason="Record disappeared after write"))
        elif not _matches(stored[0], wanted[record_id]):
            result.failed.append(RecordFailure(record_id=record_id,
                                               reason="Stored values differ from the written values"))
        else:
            wanted[record_id].version = stored[0].version
            confirmed.append(record_id)
    result.succeeded_ids = confirmed
    return result


def commit_records(store: RecordStore, records: List[AssessmentRecord],
                   max_attempts: int = COMMIT_MAX_ATTEMPTS,
                   backoff_seconds: float = COMMIT_BACKOFF_SECONDS,
                   check_versions: bool = COMMIT_CHECK_VERSIONS,
                   reconcile: bool = True, sleep=time.sleep) -> CommitResult:
    """
    Persist `skills` and `total_score` of every record.

    Returns a CommitResult naming the ids that were written and the ids that
    failed with their reasons. Errors raised by the store never escape this
    function. Written records are updated in place with their new version.
    """
    start_time = time.time()

    if store.supports_transactions:
        updates = [
            RecordUpdate(record_id=r.id, fields=_fields(r),
                         expected_version=r.version if check_versions else None)
            for r in records
        ]
        try:
            versions = store.update_records(updates) or {}
        except Exception as e:
            log_with_context(logger, "ERROR", "Transactional commit failed: {}".format(e),
                             extra_data={"records": len(records)}, exc_info=True)
            result = CommitResult(
                failed=[RecordFailure(record_id=r.id, reason=_reason(e)) for r in records],
                atomic=True,
            )
        else:
            for record in records:
                if versions.get(record.id) is not None:
                    record.version = versions[record.id]
            result = CommitResult(succeeded_ids=[r.id for r in records], atomic=True)
    else:
        result = CommitResult()
        for record in records:
            try:
                version = _update_with_retry(store, record, max_attempts, backoff_seconds,
                                             check_versions, sleep=sleep)
            except Exception as e:
                log_with_context(logger, "ERROR", "Failed to commit record: {}".format(e),
                                 context={"record_id": record.id}, exc_info=True)
                result.failed.append(RecordFailure(record_id=record.id, reason=_reason(e)))
                continue
            if version is not None:
                record.version = version
            result.succeeded_ids.append(record.id)
        if reconcile:
            result = _reconcile(store, records, result)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO" if result.success else "WARNING",
        "Commit finished: {} succeeded, {} failed".format(
            len(result.succeeded_ids), len(result.failed)),
        extra_data={"duration_ms": round(duration_ms, 2), "atomic": result.atomic,
                    "failed_ids": result.failed_ids})
    return result


def commit_session(session: BatchEditSession, store: RecordStore,
                   reload: bool = True, **kwargs) -> CommitResult:
    """
    Commit a session's working set.

    The session refuses edits and other commits while this runs. On full
    success the batch is re-read from the store and becomes the session's
    new loaded state; on any failure the working set is kept, with the
    versions of the records that were written, so the user can retry.
    """
    if not session.can_edit:
        raise PermissionDeniedError("Saving assessments requires the edit capability")

    with session.committing():
        result = commit_records(store, session.working_records, **kwargs)

        log_with_context(logger, "INFO", "Session commit {}".format("succeeded" if result.success else "failed"),
                         context={"session_id": session.id, "batch_key": session.key})

        if result.success and reload:
            session.reload(load_batch(store, session.detail.title, session.detail.date))
    return result
