# tracker/routes/data.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..schema import BulkRow, ChangeLogEntry, ChangeType, ImportSummary
from ..services import bulk_entry, export
from ..state import TrackerSession, get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["data"])

XLSX_MEDIA = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class PasteRequest(BaseModel):
    text: str = ""


class ImportRequest(BaseModel):
    text: Optional[str] = None
    rows: List[BulkRow] = []


def _preview_dict(p: bulk_entry.ParsedRow) -> Dict[str, Any]:
    return {"row": p.row.model_dump(mode="json"), "error": p.error, "is_valid": p.is_valid}


# ---------- bulk entry ----------

@router.post("/bulk/preview")
def bulk_preview(payload: PasteRequest):
    parsed = bulk_entry.parse_pasted_rows(payload.text)
    return {
        "rows": [_preview_dict(p) for p in parsed],
        "valid": sum(1 for p in parsed if p.is_valid),
        "invalid": sum(1 for p in parsed if not p.is_valid),
    }


@router.post("/bulk/import", response_model=ImportSummary)
def bulk_import(payload: ImportRequest, session: TrackerSession = Depends(get_session)):
    """Import pasted text (invalid lines are dropped) and/or already tokenized rows."""
    rows = list(payload.rows)
    invalid = 0
    if payload.text:
        parsed = bulk_entry.parse_pasted_rows(payload.text)
        rows.extend(bulk_entry.valid_rows(parsed))
        invalid = sum(1 for p in parsed if not p.is_valid)
    summary = session.import_bulk(rows)
    summary.rows_skipped += invalid
    return summary


@router.post("/bulk/upload", response_model=ImportSummary)
def bulk_upload(file: UploadFile = File(...), session: TrackerSession = Depends(get_session)):
    try:
        rows = bulk_entry.parse_workbook(file.file)
    except Exception as e:
        logger.info("Rejected workbook %s: %s", file.filename, e)
        return JSONResponse(
            status_code=422,
            content={"error": "invalid_workbook", "message": f"Could not read {file.filename}: {e}"},
        )
    return session.import_bulk(rows)


# ---------- change log ----------

@router.get("/changelog", response_model=List[ChangeLogEntry])
def change_log(
    change_type: Optional[ChangeType] = Query(None),
    subject_id: Optional[str] = Query(None),
    session: TrackerSession = Depends(get_session),
):
    return session.list_change_log(change_type=change_type, subject_id=subject_id)


@router.get("/changelog/report.pdf")
def change_log_report(
    change_type: Optional[ChangeType] = Query(None),
    session: TrackerSession = Depends(get_session),
):
    path = export.export_change_log_pdf(session.snapshot, now=session.now(), change_type=change_type)
    return FileResponse(path, media_type="application/pdf", filename=path.name)


# ---------- exports ----------

@router.get("/export/calendar")
def export_calendar(
    mode: Literal["ALL", "UPCOMING"] = Query("UPCOMING"),
    start_month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    end_month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    site: Literal["ALL", "AIIMS", "SJH", "MEERUT"] = Query("ALL"),
    session: TrackerSession = Depends(get_session),
):
    try:
        flt = export.ExportFilter(mode=mode, start_month=start_month, end_month=end_month, site=site)
    except PydanticValidationError as e:
        return JSONResponse(status_code=422, content={"error": "invalid_filter", "message": str(e)})
    path = export.export_calendar(session.snapshot, flt, now=session.now())
    return FileResponse(path, media_type=XLSX_MEDIA, filename=path.name)


@router.get("/export/exited")
def export_exited(session: TrackerSession = Depends(get_session)):
    path = export.export_exited_subjects(session.snapshot, now=session.now())
    return FileResponse(path, media_type=XLSX_MEDIA, filename=path.name)
