"""
Batch Grouper - turns flat assessment records into batch summaries.

Records are grouped by the composite key "<title>-<date>". Per batch:
- count / ids: every member record
- total_score_sum: stored totals of non-absent members
- average_score: total_score_sum / scored_count (0 when nobody was scored)
- assessing_coach / responsible_coach: taken from the batch's first record

"First" is the member with the lowest id. Input is sorted by id before
grouping, so the summaries do not depend on the order the store returned.
"""

from typing import Iterable, List, Optional

from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import (
    AssessmentRecord, BatchSummary, RecordFilter, make_batch_key
)
from assessment_batches.store import RecordStore

logger = get_logger("batches")

ALL_COACHES = "all"


def group_batches(records: Iterable[AssessmentRecord]) -> List[BatchSummary]:
    """
    Group records into batch summaries.

    Output is ordered by date (newest first), then title.
    """
    grouped = {}
    for record in sorted(records, key=lambda r: r.id):
        key = make_batch_key(record.title, record.date)
        summary = grouped.get(key)
        if summary is None:
            summary = BatchSummary(
                key=key,
                title=record.title,
                date=record.date,
                assessing_coach=record.assessing_coach_name,
                assessing_coach_id=record.coach_id,
                responsible_coach=record.responsible_coach_name,
            )
            grouped[key] = summary

        summary.count += 1
        summary.ids.append(record.id)
        if not record.is_absent:
            summary.scored_count += 1
            summary.total_score_sum += record.total_score or 0

    for summary in grouped.values():
        if summary.scored_count:
            summary.average_score = summary.total_score_sum / summary.scored_count

    summaries = sorted(grouped.values(), key=lambda s: s.title)
    summaries.sort(key=lambda s: s.date, reverse=True)
    return summaries


def filter_by_assessing_coach(summaries: List[BatchSummary],
                              coach_id: Optional[str]) -> List[BatchSummary]:
    """In-memory filter on the assessing coach; None or "all" keeps everything."""
    if not coach_id or coach_id == ALL_COACHES:
        return list(summaries)
    return [s for s in summaries if s.assessing_coach_id == coach_id]


def list_batches(store: RecordStore, current_coach_id: Optional[str] = None) -> List[BatchSummary]:
    """Fetch records (optionally only those a coach assessed) and group them."""
    records = store.query_records(RecordFilter(assessing_coach_id=current_coach_id))
    summaries = group_batches(records)

    log_with_context(logger, "INFO",
        "Grouped {} records into {} batches".format(len(records), len(summaries)),
        context={"assessing_coach_id": current_coach_id})
    return summaries
