import datetime as dt

import pytest

from assessment_batches.errors import PermissionDeniedError
from assessment_batches.schemas import BatchKey, RecordFilter
from assessment_batches.services.deletion import bulk_delete, delete_batch
from assessment_batches.store import SqlRecordStore
from conftest import SPRING_DATE, FakeStore, make_record


@pytest.fixture
def store():
    return FakeStore([
        make_record("r1", title="One"),
        make_record("r2", title="One"),
        make_record("r3", title="Two"),
        make_record("r4", title="Three"),
    ])


def test_bulk_delete_attempts_every_key(store):
    store.delete_failures = {"Two"}
    keys = [BatchKey(title=t, date=SPRING_DATE) for t in ("One", "Two", "Three")]

    result = bulk_delete(store, keys, can_delete=True)

    assert [title for title, _ in store.delete_calls] == ["One", "Two", "Three"]
    assert sorted(store.records) == ["r3"]
    assert result.success is False
    assert result.failed_keys == ["Two-2024-03-01"]
    assert [o.deleted_count for o in result.outcomes] == [2, 0, 1]


def test_bulk_delete_accepts_string_keys_and_dedupes(store):
    result = bulk_delete(store, ["One-2024-03-01", "One-2024-03-01", "Three-2024-03-01"],
                         can_delete=True)

    assert result.success
    assert len(store.delete_calls) == 2
    assert sorted(store.records) == ["r3"]


def test_delete_requires_capability(store):
    with pytest.raises(PermissionDeniedError):
        delete_batch(store, BatchKey(title="One", date=SPRING_DATE), can_delete=False)
    with pytest.raises(PermissionDeniedError):
        bulk_delete(store, ["One-2024-03-01"], can_delete=False)
    assert len(store.records) == 4
    assert store.delete_calls == []


def test_single_delete_reports_failure(store):
    store.delete_failures = {"One"}
    outcome = delete_batch(store, "One-2024-03-01", can_delete=True)
    assert outcome.success is False
    assert "delete failed" in outcome.error


def test_sql_delete_only_removes_matching_batch(seeded_db):
    store = SqlRecordStore(seeded_db)

    outcome = delete_batch(store, BatchKey(title="Spring Eval", date=SPRING_DATE), can_delete=True)

    assert outcome.deleted_count == 2
    remaining = [r.id for r in store.query_records(RecordFilter())]
    assert remaining == ["a3"]


def test_sql_delete_with_unmatched_date_removes_nothing(seeded_db):
    store = SqlRecordStore(seeded_db)
    outcome = delete_batch(store, BatchKey(title="Spring Eval", date=dt.date(2024, 3, 2)), can_delete=True)
    assert outcome.success
    assert outcome.deleted_count == 0


def test_bulk_delete_continues_after_unexpected_adapter_error(store):
    original_delete = store.delete_records

    def dropping_connection(record_filter):
        if record_filter.title == "Two":
            store.delete_calls.append((record_filter.title, record_filter.date))
            raise ConnectionError("socket closed")
        return original_delete(record_filter)

    store.delete_records = dropping_connection
    keys = [BatchKey(title=t, date=SPRING_DATE) for t in ("One", "Two", "Three")]

    result = bulk_delete(store, keys, can_delete=True)

    assert [title for title, _ in store.delete_calls] == ["One", "Two", "Three"]
    assert result.success is False
    assert result.failed_keys == ["Two-2024-03-01"]
    assert result.outcomes[1].error == "ConnectionError: socket closed"
    assert sorted(store.records) == ["r3"]
