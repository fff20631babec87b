"""Spreadsheet and PDF exports of the study state."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, field_validator

from .. import config
from ..errors import ExternalServiceError, NothingToExport
from ..schema import Appointment, AppointmentStatus, ChangeLogEntry, ChangeType, Snapshot
from ..utils import fmt_day, month_key
from . import changelog
from .pdf import generate_change_log_pdf
from .subjects import find_subject

logger = logging.getLogger(__name__)

SITE_PREFIXES: Dict[str, str] = {"AIIMS": "A", "SJH": "S", "MEERUT": "M"}


class ExportFilter(BaseModel):
    mode: Literal["ALL", "UPCOMING"] = "UPCOMING"
    start_month: Optional[str] = None   # YYYY-MM, inclusive
    end_month: Optional[str] = None
    site: Literal["ALL", "AIIMS", "SJH", "MEERUT"] = "ALL"

    @field_validator("start_month", "end_month")
    @classmethod
    def _month_format(cls, v):
        if v:
            datetime.strptime(v, "%Y-%m")
        return v or None


def filter_appointments(appointments: List[Appointment], flt: ExportFilter, now: datetime) -> List[Appointment]:
    out = []
    for a in appointments:
        if flt.mode == "UPCOMING" and not (a.status == AppointmentStatus.SCHEDULED and a.date > now):
            continue
        key = month_key(a.date)
        if flt.start_month and key < flt.start_month:
            continue
        if flt.end_month and key > flt.end_month:
            continue
        if flt.site != "ALL" and a.subject_id.strip()[:1].upper() != SITE_PREFIXES[flt.site]:
            continue
        out.append(a)
    return out


def calendar_rows(snapshot: Snapshot, appointments: List[Appointment]) -> List[Dict[str, str]]:
    rows = []
    for a in appointments:
        s = find_subject(snapshot, a.subject_id)
        rows.append({
            "Subject ID": a.subject_id,
            "Name": s.name if s else config.UNKNOWN_SUBJECT_NAME,
            "Mobile": (s.phone if s else None) or "",
            "Date of Insertion": fmt_day(s.insertion_date) if s and s.insertion_date else "N/A",
            "Remark": a.notes or "",
            "Appointment Date": fmt_day(a.date),
            "Status": a.status.value,
        })
    return rows


def calendar_filename(flt: ExportFilter) -> str:
    start, end = flt.start_month, flt.end_month
    if not start and not end:
        duration = "all"
    elif start == end:
        duration = start
    else:
        duration = f"{start or 'start'}_to_{end or 'end'}"
    return f"ProTrack_{flt.mode}_{flt.site}_{duration}.xlsx"


def _write_xlsx(rows: List[Dict[str, str]], path: Path, sheet: str) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(rows).to_excel(path, index=False, sheet_name=sheet, engine="openpyxl")
    except Exception as e:
        logger.error("Writing %s failed", path, exc_info=True)
        raise ExternalServiceError(f"Could not write {path.name}: {e}") from e
    return path


def export_calendar(
    snapshot: Snapshot,
    flt: ExportFilter,
    *,
    now: datetime,
    out_dir: Optional[Path] = None,
) -> Path:
    appts = filter_appointments(list(snapshot.appointments), flt, now)
    if not appts:
        raise NothingToExport("No records found for the selected duration and filters.")
    appts.sort(key=lambda a: a.date)
    path = (out_dir or config.EXPORTS_DIR) / calendar_filename(flt)
    _write_xlsx(calendar_rows(snapshot, appts), path, "Calendar")
    logger.info("Exported %d appointments to %s", len(appts), path)
    return path


def exited_rows(entries: List[ChangeLogEntry]) -> List[Dict[str, str]]:
    return [
        {
            "Timestamp of Exit": e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "Subject ID": e.subject_id,
            "Subject Name": e.subject_name,
            "Exit Reason / Details": e.comment,
            "System Note": e.details,
        }
        for e in entries
    ]


def export_exited_subjects(snapshot: Snapshot, *, now: datetime, out_dir: Optional[Path] = None) -> Path:
    entries = changelog.exited_entries(snapshot.change_log)
    if not entries:
        raise NothingToExport("No exited subjects to export.")
    path = (out_dir or config.EXPORTS_DIR) / f"ProTrack_Exited_Subjects_{fmt_day(now)}.xlsx"
    return _write_xlsx(exited_rows(entries), path, "Exited Subjects")


def export_change_log_pdf(
    snapshot: Snapshot,
    *,
    now: datetime,
    change_type: Optional[ChangeType] = None,
    out_dir: Optional[Path] = None,
) -> Path:
    entries = changelog.list_entries(snapshot.change_log, change_type=change_type)
    if not entries:
        raise NothingToExport("The change log has no matching entries.")
    label = change_type.value if change_type else "ALL"
    path = (out_dir or config.EXPORTS_DIR) / f"ProTrack_ChangeLog_{label}_{fmt_day(now)}.pdf"
    try:
        return generate_change_log_pdf(path, entries, generated_at=now)
    except Exception as e:
        logger.error("Writing %s failed", path, exc_info=True)
        raise ExternalServiceError(f"Could not write {path.name}: {e}") from e
