"""
Batch Deletion Coordinator - removes whole batches by (title, date).

Each batch is removed with one predicate delete. Bulk deletes run
sequentially and attempt every key exactly once, even after failures;
the caller gets both the aggregate outcome and the per-key outcomes.
"""

import time
from typing import Iterable, List, Union

from assessment_batches.errors import PermissionDeniedError, StoreError
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import (
    BatchDeleteOutcome, BatchKey, BulkDeleteResult, RecordFilter, parse_batch_key
)
from assessment_batches.store import RecordStore

logger = get_logger("delete")


def _as_key(key: Union[BatchKey, str]) -> BatchKey:
    return key if isinstance(key, BatchKey) else parse_batch_key(key)


def _delete_one(store: RecordStore, key: BatchKey) -> BatchDeleteOutcome:
    try:
        deleted = store.delete_records(RecordFilter(title=key.title, date=key.date))
    except Exception as e:
        # Any adapter error is this key's outcome; the remaining keys still run
        error = str(e) if isinstance(e, StoreError) else "{}: {}".format(type(e).__name__, e)
        log_with_context(logger, "ERROR", "Failed to delete batch: {}".format(error),
                         context={"batch_key": key.key}, exc_info=True)
        return BatchDeleteOutcome(key=key.key, title=key.title, date=key.date,
                                  success=False, error=error)

    log_with_context(logger, "INFO", "Deleted batch ({} records)".format(deleted),
                     context={"batch_key": key.key})
    return BatchDeleteOutcome(key=key.key, title=key.title, date=key.date,
                              success=True, deleted_count=deleted)


def delete_batch(store: RecordStore, key: Union[BatchKey, str], can_delete: bool) -> BatchDeleteOutcome:
    """Delete every record of one batch."""
    if not can_delete:
        raise PermissionDeniedError("Deleting assessments requires the delete capability")
    return _delete_one(store, _as_key(key))


def bulk_delete(store: RecordStore, keys: Iterable[Union[BatchKey, str]],
                can_delete: bool) -> BulkDeleteResult:
    """Delete several batches one after another; duplicate keys are deleted once."""
    if not can_delete:
        raise PermissionDeniedError("Deleting assessments requires the delete capability")

    start_time = time.time()
    unique: List[BatchKey] = []
    for key in keys:
        key = _as_key(key)
        if key not in unique:
            unique.append(key)

    outcomes = [_delete_one(store, key) for key in unique]
    result = BulkDeleteResult(success=all(o.success for o in outcomes), outcomes=outcomes)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO" if result.success else "WARNING",
        "Bulk delete finished: {} of {} batches deleted".format(
            len(outcomes) - len(result.failed_keys), len(outcomes)),
        extra_data={"duration_ms": round(duration_ms, 2), "failed_keys": result.failed_keys})
    return result
