import threading

import pytest

from assessment_batches.errors import PermissionDeniedError, SessionBusyError, StoreError
from assessment_batches.schemas import SkillDefinition
from assessment_batches.services.committer import commit_records, commit_session
from assessment_batches.services.detail_loader import load_batch
from assessment_batches.services.edit_session import BatchEditSession
from assessment_batches.store import SqlRecordStore
from conftest import SPRING_DATE, FakeStore, make_record


@pytest.fixture
def three_store():
    return FakeStore([
        make_record("r1", skills=(("tumbling", 8, 10),)),
        make_record("r2", skills=(("tumbling", 6, 10),)),
        make_record("r3", skills=(("tumbling", 4, 10),)),
    ])


def edited(store):
    session = BatchEditSession(load_batch(store, "Spring Eval", SPRING_DATE))
    session.add_skill(SkillDefinition(name="balance", max_score=5))
    for record in session.working_records:
        session.set_score(record.id, "balance", 2)
    return session


def test_sequential_commit_writes_every_record(three_store):
    session = edited(three_store)

    result = commit_records(three_store, session.working_records, sleep=lambda s: None)

    assert result.success
    assert result.atomic is False
    assert result.succeeded_ids == ["r1", "r2", "r3"]
    assert three_store.records["r2"].total_score == 8
    assert [s.name for s in three_store.records["r3"].skills] == ["tumbling", "balance"]


def test_transient_failure_is_retried(three_store):
    session = edited(three_store)
    three_store.update_failures = {"r2": 1}
    delays = []

    result = commit_records(three_store, session.working_records, max_attempts=3,
                            backoff_seconds=0.5, sleep=delays.append)

    assert result.success
    assert three_store.update_calls == ["r1", "r2", "r2", "r3"]
    assert delays == [0.5]


def test_persistent_failure_is_reported_per_record(three_store):
    session = edited(three_store)
    three_store.update_failures = {"r2": 99}

    result = commit_records(three_store, session.working_records, max_attempts=2,
                            sleep=lambda s: None)

    assert not result.success
    assert result.succeeded_ids == ["r1", "r3"]
    assert result.failed_ids == ["r2"]
    assert "connection reset" in result.failed[0].reason
    # later records were still attempted
    assert three_store.records["r3"].total_score == 6
    assert three_store.records["r2"].total_score == 6


def test_stale_record_is_not_retried(three_store):
    session = edited(three_store)
    three_store.records["r1"].version = 5

    result = commit_records(three_store, session.working_records, check_versions=True,
                            sleep=lambda s: None)

    assert result.failed_ids == ["r1"]
    assert three_store.update_calls.count("r1") == 1
    assert result.succeeded_ids == ["r2", "r3"]


def test_reconciliation_demotes_writes_that_did_not_stick(three_store):
    session = edited(three_store)
    original_update = three_store.update_record

    def lossy_update(record_id, fields, expected_version=None):
        if record_id == "r3":
            three_store.update_calls.append(record_id)
            return
        original_update(record_id, fields, expected_version)

    three_store.update_record = lossy_update

    result = commit_records(three_store, session.working_records, sleep=lambda s: None)

    assert result.succeeded_ids == ["r1", "r2"]
    assert result.failed_ids == ["r3"]


def test_commit_session_reloads_on_success(three_store):
    session = edited(three_store)

    result = commit_session(session, three_store, sleep=lambda s: None)

    assert result.success
    assert session.dirty is False
    assert session.commit_in_flight is False
    assert session.skill_names == ["tumbling", "balance"]
    assert [r.version for r in session.detail.loaded] == [2, 2, 2]


def test_commit_session_keeps_working_set_on_failure(three_store):
    session = edited(three_store)
    three_store.update_failures = {"r1": 99}

    result = commit_session(session, three_store, max_attempts=1)

    assert result.failed_ids == ["r1"]
    assert session.dirty is True
    assert session.commit_in_flight is False
    assert session.working_records[0].total_score == 10


def test_commit_session_guards(three_store):
    session = edited(three_store)
    session.commit_in_flight = True
    with pytest.raises(SessionBusyError):
        commit_session(session, three_store)

    readonly = BatchEditSession(load_batch(three_store, "Spring Eval", SPRING_DATE), can_edit=False)
    with pytest.raises(PermissionDeniedError):
        commit_session(readonly, three_store)


def test_sql_store_commits_in_one_transaction(seeded_db):
    store = SqlRecordStore(seeded_db)
    session = BatchEditSession(load_batch(store, "Spring Eval", SPRING_DATE))
    session.set_score("a1", "tumbling", 10)

    result = commit_session(session, store)

    assert result.success
    assert result.atomic is True
    assert session.working_records[0].total_score == 10
    assert session.detail.loaded[0].version == 2


def test_sql_store_rolls_back_whole_batch_on_stale_record(seeded_db):
    store = SqlRecordStore(seeded_db)
    session = BatchEditSession(load_batch(store, "Spring Eval", SPRING_DATE))
    session.set_score("a1", "tumbling", 10)
    session.set_score("a2", "tumbling", 9)
    # someone else saved a2 in the meantime
    store.update_record("a2", {"total_score": 6})

    result = commit_records(store, session.working_records, check_versions=True)

    assert not result.success
    assert result.failed_ids == ["a1", "a2"]
    reloaded = load_batch(store, "Spring Eval", SPRING_DATE)
    assert [r.total_score for r in reloaded.loaded] == [8, 6]


# ── Retrying a partly failed commit ───────────────────────────

def test_retry_after_partial_failure_with_version_checks(three_store):
    session = edited(three_store)
    three_store.update_failures = {"r2": 1}

    first = commit_session(session, three_store, max_attempts=1, check_versions=True)

    assert first.succeeded_ids == ["r1", "r3"]
    assert first.failed_ids == ["r2"]
    assert [r.version for r in session.working_records] == [2, 1, 2]

    second = commit_session(session, three_store, max_attempts=1, check_versions=True)

    assert second.success
    assert second.failed == []
    assert three_store.records["r2"].total_score == 8
    assert session.dirty is False


def test_write_that_landed_before_a_transient_error_counts_as_written(three_store):
    session = edited(three_store)
    original_update = three_store.update_record
    flaky = {"r2": 1}

    def write_then_fail(record_id, fields, expected_version=None):
        version = original_update(record_id, fields, expected_version)
        if flaky.get(record_id):
            flaky[record_id] -= 1
            raise StoreError("timeout after write")
        return version

    three_store.update_record = write_then_fail

    result = commit_records(three_store, session.working_records, max_attempts=3,
                            check_versions=True, sleep=lambda s: None)

    assert result.success
    assert result.succeeded_ids == ["r1", "r2", "r3"]
    assert session.working_records[1].version == 2


def test_unexpected_adapter_error_is_reported_per_record(three_store):
    session = edited(three_store)
    original_update = three_store.update_record

    def dropping_connection(record_id, fields, expected_version=None):
        if record_id == "r2":
            raise ConnectionError("socket closed")
        return original_update(record_id, fields, expected_version)

    three_store.update_record = dropping_connection

    result = commit_records(three_store, session.working_records, sleep=lambda s: None)

    assert result.succeeded_ids == ["r1", "r3"]
    assert result.failed_ids == ["r2"]
    assert result.failed[0].reason == "ConnectionError: socket closed"


# ── Concurrent access to one session ──────────────────────────

def test_second_commit_and_edits_refused_while_commit_runs(three_store):
    session = edited(three_store)
    original_update = three_store.update_record
    writing = threading.Event()
    release = threading.Event()

    def slow_update(record_id, fields, expected_version=None):
        writing.set()
        release.wait(timeout=5)
        return original_update(record_id, fields, expected_version)

    three_store.update_record = slow_update
    results = []
    worker = threading.Thread(target=lambda: results.append(commit_session(session, three_store)))
    worker.start()
    assert writing.wait(timeout=5)

    try:
        with pytest.raises(SessionBusyError):
            commit_session(session, three_store)
        with pytest.raises(SessionBusyError):
            session.set_score("r1", "balance", 1)
        with pytest.raises(SessionBusyError):
            session.discard()
    finally:
        release.set()
        worker.join(timeout=5)

    assert results[0].success
    assert session.commit_in_flight is False
    session.set_score("r1", "balance", 1)
