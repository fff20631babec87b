"""Tokenizers that turn pasted text or an uploaded workbook into ``BulkRow``s."""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import IO, List, Optional, Union

import pandas as pd
from pydantic import BaseModel

from ..schema import BulkRow

PASTE_COLUMNS = ("subject_id", "name", "phone", "insertion_date", "appointment_date", "remark")
FIRST_APPOINTMENT_COL = 5   # column F in the workbook layout


class ParsedRow(BaseModel):
    row: BulkRow
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def parse_ddmmyyyy(text: Optional[str]) -> Optional[datetime]:
    """Parse ``DD/MM/YYYY`` (or ``DD-MM-YY``); impossible calendar dates give ``None``."""
    if not isinstance(text, str) or not text.strip():
        return None
    parts = re.split(r"[/\-]", text.strip())
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
    except ValueError:
        return None
    if year < 100:
        year += 2000
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_pasted_rows(text: str) -> List[ParsedRow]:
    """
    Tab-separated rows copied from a spreadsheet:
    Subject ID, Name, Mobile, Date of Insertion, Appointment Date, Remark.
    """
    out: List[ParsedRow] = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        cols = [c.strip() for c in line.split("\t")]
        cols += [""] * (len(PASTE_COLUMNS) - len(cols))
        subject_id, name, phone, insertion_raw, appt_raw, remark = cols[: len(PASTE_COLUMNS)]

        appt_date = parse_ddmmyyyy(appt_raw)
        error = None
        if not subject_id:
            error = "Missing Subject ID"
        elif appt_date is None:
            error = "Invalid Appt Date (Use DD/MM/YYYY)"

        row = BulkRow(
            subject_id=subject_id,
            name=name,
            phone=phone,
            insertion_date=parse_ddmmyyyy(insertion_raw),
            appointment_date=appt_date,
            remark=remark,
        )
        out.append(ParsedRow(row=row, error=error))
    return out


def valid_rows(parsed: List[ParsedRow]) -> List[BulkRow]:
    return [p.row for p in parsed if p.is_valid]


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))   # phone numbers come back as floats
    return str(value).strip()


def _cell_date(value) -> Optional[datetime]:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = _cell_text(value)
    if not text:
        return None
    parsed = parse_ddmmyyyy(text)
    if parsed is not None:
        return parsed
    ts = pd.to_datetime(text, errors="coerce", dayfirst=True)
    return None if pd.isna(ts) else ts.to_pydatetime()


def parse_workbook(source: Union[str, IO[bytes]]) -> List[BulkRow]:
    """
    First sheet, header row skipped. Columns: A id, B name, C mobile,
    D alternative mobile, E date of insertion, F onwards appointment dates.
    Each parseable appointment cell becomes one row.
    """
    df = pd.read_excel(source, sheet_name=0, header=None, engine="openpyxl")
    rows: List[BulkRow] = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        values = list(values)
        values += [None] * (FIRST_APPOINTMENT_COL - len(values))
        subject_id = _cell_text(values[0])
        if not subject_id:
            continue
        for j in range(FIRST_APPOINTMENT_COL, len(values)):
            when = _cell_date(values[j])
            if when is None:
                continue
            rows.append(BulkRow(
                subject_id=subject_id,
                name=_cell_text(values[1]),
                phone=_cell_text(values[2]),
                alt_phone=_cell_text(values[3]),
                insertion_date=_cell_date(values[4]),
                appointment_date=when,
                remark=f"Imported from Col {j + 1}",
            ))
    return rows
