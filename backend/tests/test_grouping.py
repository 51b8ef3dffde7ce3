import datetime as dt

import pytest

from assessment_batches.schemas import BatchKey, parse_batch_key
from assessment_batches.services.grouping import (
    filter_by_assessing_coach, group_batches, list_batches
)
from conftest import FakeStore, make_record


def test_spring_eval_summary(spring_records):
    summaries = group_batches(spring_records)

    assert len(summaries) == 1
    batch = summaries[0]
    assert batch.key == "Spring Eval-2024-03-01"
    assert batch.count == 2
    assert batch.total_score_sum == 14
    assert batch.average_score == 7.0
    assert batch.ids == ["r1", "r2"]


def test_grouping_ignores_input_order():
    records = [
        make_record("b", assessing_coach_name="Second", coach_id="coach-b"),
        make_record("a", assessing_coach_name="First", coach_id="coach-a"),
        make_record("c", title="Other"),
    ]

    forward = group_batches(records)
    backward = group_batches(list(reversed(records)))

    assert [s.model_dump() for s in forward] == [s.model_dump() for s in backward]
    spring = next(s for s in forward if s.title == "Spring Eval")
    # lowest id wins the "first record" fields
    assert spring.assessing_coach == "First"
    assert spring.assessing_coach_id == "coach-a"
    assert spring.ids == ["a", "b"]


def test_grouping_is_idempotent(spring_records):
    assert group_batches(spring_records) == group_batches(spring_records)


def test_assessing_and_responsible_coach_are_kept_separately():
    summary = group_batches([make_record("r1", assessing_coach_name="Dana Levi",
                                         responsible_coach_name="Maya Cohen")])[0]
    assert summary.assessing_coach == "Dana Levi"
    assert summary.responsible_coach == "Maya Cohen"


def test_absent_records_are_counted_but_not_summed():
    records = [
        make_record("r1", skills=(("tumbling", 8, 10),)),
        make_record("r2", skills=(("tumbling", 9, 10),), status="absent"),
    ]

    batch = group_batches(records)[0]

    assert batch.count == 2
    assert batch.scored_count == 1
    assert batch.total_score_sum == 8
    assert batch.average_score == 8


def test_batches_ordered_newest_first():
    records = [
        make_record("r1", title="Old", date=dt.date(2023, 12, 1)),
        make_record("r2", title="New", date=dt.date(2024, 5, 1)),
        make_record("r3", title="Also New", date=dt.date(2024, 5, 1)),
    ]

    assert [s.title for s in group_batches(records)] == ["Also New", "New", "Old"]


def test_same_title_different_dates_are_separate_batches():
    records = [
        make_record("r1", date=dt.date(2024, 3, 1)),
        make_record("r2", date=dt.date(2024, 3, 8)),
    ]
    assert len(group_batches(records)) == 2


def test_filter_by_assessing_coach():
    summaries = group_batches([
        make_record("r1", title="A", coach_id="coach-1"),
        make_record("r2", title="B", coach_id="coach-2"),
    ])

    assert len(filter_by_assessing_coach(summaries, None)) == 2
    assert len(filter_by_assessing_coach(summaries, "all")) == 2
    assert [s.title for s in filter_by_assessing_coach(summaries, "coach-2")] == ["B"]


def test_list_batches_prefilters_by_current_coach():
    store = FakeStore([
        make_record("r1", title="A", coach_id="coach-1"),
        make_record("r2", title="B", coach_id="coach-2"),
    ])

    assert [s.title for s in list_batches(store, current_coach_id="coach-1")] == ["A"]
    assert len(list_batches(store)) == 2


def test_parse_batch_key_keeps_dashes_in_title():
    key = parse_batch_key("Level-2 Check-2024-03-01")
    assert key == BatchKey(title="Level-2 Check", date=dt.date(2024, 3, 1))
    assert key.key == "Level-2 Check-2024-03-01"


@pytest.mark.parametrize("bad", ["", "Spring Eval", "Spring Eval-2024-13-01", "Spring Eval 2024-03-01"])
def test_parse_batch_key_rejects_malformed_keys(bad):
    with pytest.raises(ValueError):
        parse_batch_key(bad)
