from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Tuple
from urllib.parse import quote

import pandas as pd
from pydantic import BaseModel, Field

from .. import config
from ..errors import ExternalServiceError
from ..schema import Appointment, AppointmentStatus, Snapshot, Subject
from .appointments import list_appointments
from .subjects import find_subject

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_TEMPLATE = (
    "Hello {name}, this is a reminder for your appointment on {date}. "
    "Please confirm your availability."
)

Pair = Tuple[Subject, Appointment]


class ReminderConfig(BaseModel):
    days_before: int = Field(default=1, ge=0)
    template: str = DEFAULT_REMINDER_TEMPLATE


def render_reminder(subject: Subject, appointment: Appointment, template: str = DEFAULT_REMINDER_TEMPLATE) -> str:
    return (
        template
        .replace("{name}", subject.name)
        .replace("{date}", appointment.date.strftime("%d/%m/%Y"))
    )


def _with_subjects(snapshot: Snapshot, appts: Iterable[Appointment]) -> List[Pair]:
    # appointments of exited subjects drop out here
    out: List[Pair] = []
    for a in appts:
        s = find_subject(snapshot, a.subject_id)
        if s is not None:
            out.append((s, a))
    return out


def upcoming_reminders(snapshot: Snapshot, now: datetime, days: int = config.UPCOMING_WINDOW_DAYS) -> List[Pair]:
    """Scheduled appointments of active subjects falling in [now, now + days]."""
    horizon = now + timedelta(days=days)
    appts = [
        a for a in list_appointments(snapshot, status=AppointmentStatus.SCHEDULED)
        if now <= a.date <= horizon
    ]
    return _with_subjects(snapshot, appts)


def recent_missed(snapshot: Snapshot, now: datetime, days: int = config.MISSED_LOOKBACK_DAYS) -> List[Pair]:
    """Missed appointments of active subjects from the last ``days`` days, newest first."""
    since = now - timedelta(days=days)
    appts = [
        a for a in list_appointments(snapshot, status=AppointmentStatus.MISSED)
        if since <= a.date <= now
    ]
    appts.reverse()
    return _with_subjects(snapshot, appts)


def whatsapp_link(phone: str, text: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    return f"https://wa.me/{digits}?text={quote(text)}"


@dataclass
class ReminderService:
    path: Path = field(default_factory=lambda: config.REMINDERS_XLSX)

    def schedule(self, pairs: Iterable[Pair], reminder: ReminderConfig) -> int:
        """Append one reminder row per appointment to the reminders workbook."""
        rows = []
        for subject, appt in pairs:
            send_at = appt.date - timedelta(days=reminder.days_before)
            rows.append({
                "send_at": send_at.isoformat(timespec="seconds"),
                "subject_id": subject.id,
                "to": subject.phone or (str(subject.email) if subject.email else ""),
                "message": render_reminder(subject, appt, reminder.template),
                "appointment_id": appt.id,
                "appointment_iso": appt.date.isoformat(timespec="seconds"),
            })
        if not rows:
            return 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                prev = pd.read_excel(self.path, engine="openpyxl")
                out = pd.concat([prev, pd.DataFrame(rows)], ignore_index=True)
            else:
                out = pd.DataFrame(rows)
            out.to_excel(self.path, index=False, engine="openpyxl")
        except Exception as e:
            raise ExternalServiceError(f"Could not write reminder schedule: {e}") from e
        logger.info("Scheduled %d reminders into %s", len(rows), self.path)
        return len(rows)
