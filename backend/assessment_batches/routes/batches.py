"""
Batch API routes - history listing, detail, deletion and export.

Provides endpoints for:
- Listing batch summaries (optionally only batches a coach assessed)
- Loading one batch with its derived skill schema
- Deleting one batch or several batches
- Exporting a batch as CSV or PDF
"""

import datetime as dt
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from assessment_batches.capabilities import Capabilities, get_capabilities
from assessment_batches.errors import BatchError
from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.routes.common import http_error
from assessment_batches.services.deletion import bulk_delete, delete_batch
from assessment_batches.services.detail_loader import BatchDetail, load_batch
from assessment_batches.services.edit_session import SessionRegistry, registry
from assessment_batches.services.exporter import export_csv, export_filename, export_pdf
from assessment_batches.services.grouping import filter_by_assessing_coach, list_batches
from assessment_batches.schemas import BatchKey, parse_batch_key
from assessment_batches.store import RecordStore, get_store

router = APIRouter()
logger = get_logger("http")


def get_registry() -> SessionRegistry:
    return registry


# ── Pydantic schemas ─────────────────────────────────────────

class BulkDeleteRequest(BaseModel):
    """Batch keys ("<title>-<YYYY-MM-DD>") or explicit title/date pairs."""
    keys: List[str] = []
    batches: List[BatchKey] = []


def serialize_detail(detail: BatchDetail) -> dict:
    records = detail.loaded
    average = (sum(r.display_total for r in records) / len(records)) if records else 0
    return {
        "key": detail.key,
        "title": detail.title,
        "date": detail.date.isoformat(),
        "found": detail.found,
        "responsible_coach": detail.responsible_coach,
        "assessing_coach": detail.assessing_coach,
        "count": len(records),
        "average_score": round(average, 2),
        "schema": [s.model_dump() for s in detail.skill_schema],
        "schema_mismatches": detail.schema_mismatches,
        "records": [
            {**r.model_dump(mode="json"), "display_total": r.display_total}
            for r in records
        ],
    }


@router.get("/api/batches")
def get_batches(
    current_coach_id: Optional[str] = Query(None, description="Only fetch batches this coach assessed"),
    assessing_coach_id: Optional[str] = Query(None, description="Filter listed batches by assessing coach"),
    store: RecordStore = Depends(get_store)
):
    """List batch summaries, newest first."""
    start_time = time.time()
    try:
        summaries = list_batches(store, current_coach_id=current_coach_id)
    except BatchError as e:
        raise http_error(e)
    summaries = filter_by_assessing_coach(summaries, assessing_coach_id)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Listed {} batches".format(len(summaries)),
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {
        "data": [s.model_dump(mode="json") for s in summaries],
        "count": len(summaries)
    }


@router.get("/api/batches/detail")
def get_batch_detail(
    title: str = Query(..., description="Assessment title"),
    date: dt.date = Query(..., description="Assessment date (YYYY-MM-DD)"),
    store: RecordStore = Depends(get_store)
):
    """Load one batch. A batch without records is returned with found=false."""
    try:
        detail = load_batch(store, title, date)
    except BatchError as e:
        raise http_error(e)
    return serialize_detail(detail)


@router.delete("/api/batches")
def delete_single_batch(
    title: str = Query(..., description="Assessment title"),
    date: dt.date = Query(..., description="Assessment date (YYYY-MM-DD)"),
    store: RecordStore = Depends(get_store),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Delete every record of one batch."""
    try:
        outcome = delete_batch(store, BatchKey(title=title, date=date), capabilities.can_delete)
    except BatchError as e:
        raise http_error(e)
    if not outcome.success:
        raise HTTPException(status_code=502, detail="Failed to delete assessment batch: {}".format(outcome.error))
    return outcome.model_dump(mode="json")


@router.post("/api/batches/bulk-delete")
def delete_many_batches(
    request: BulkDeleteRequest,
    store: RecordStore = Depends(get_store),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Delete several batches; every batch is attempted and reported individually."""
    try:
        keys = [parse_batch_key(k) for k in request.keys] + list(request.batches)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not keys:
        raise HTTPException(status_code=400, detail="No batches selected")

    try:
        result = bulk_delete(store, keys, capabilities.can_delete)
    except BatchError as e:
        raise http_error(e)

    return {
        "success": result.success,
        "message": "Bulk deletion completed" if result.success else "Failed to complete some deletions",
        "failed_keys": result.failed_keys,
        "outcomes": [o.model_dump(mode="json") for o in result.outcomes]
    }


def _export_source(store: RecordStore, sessions: SessionRegistry, title: str, date: dt.date,
                   session_id: Optional[str]):
    """Records and skill names to export: an edit session's working set, or the stored batch."""
    if session_id:
        try:
            session = sessions.get(session_id)
        except BatchError as e:
            raise http_error(e)
        return session.detail, session.skill_names, session.working_records

    try:
        detail = load_batch(store, title, date)
    except BatchError as e:
        raise http_error(e)
    if not detail.found:
        raise HTTPException(status_code=404, detail="Batch not found")
    return detail, detail.skill_names, list(detail.loaded)


@router.get("/api/batches/export.csv")
def export_batch_csv(
    title: str = Query(..., description="Assessment title"),
    date: dt.date = Query(..., description="Assessment date (YYYY-MM-DD)"),
    store: RecordStore = Depends(get_store)
):
    """CSV of the stored batch (stored scores, absent students included as stored)."""
    detail, skill_names, records = _export_source(store, None, title, date, None)
    content = export_csv(detail.title, detail.date, skill_names, records,
                         responsible_coach=detail.responsible_coach,
                         assessing_coach=detail.assessing_coach)
    filename = export_filename(detail.title, detail.date, "csv")
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)}
    )


@router.get("/api/batches/export.pdf")
def export_batch_pdf(
    title: str = Query(..., description="Assessment title"),
    date: dt.date = Query(..., description="Assessment date (YYYY-MM-DD)"),
    session_id: Optional[str] = Query(None, description="Export this edit session's working set"),
    store: RecordStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_registry)
):
    """PDF picture of the visible table, in loaded or edit state."""
    detail, skill_names, records = _export_source(store, sessions, title, date, session_id)
    export = export_pdf(detail.title, detail.date, skill_names, records,
                        responsible_coach=detail.responsible_coach,
                        assessing_coach=detail.assessing_coach)
    return Response(
        content=export.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": 'attachment; filename="{}"'.format(export.filename),
            "X-Page-Orientation": export.orientation
        }
    )
