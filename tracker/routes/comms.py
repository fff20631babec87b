# tracker/routes/comms.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from assistant import analyze_attendance_trends, draft_follow_up_message

from ..errors import ExternalServiceError
from ..schema import Appointment, Subject
from ..services import reminders, stats
from ..services.appointments import active_appointments
from ..services.notify import send_reminder_email
from ..state import TrackerSession, get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["communications"])


class SendRequest(BaseModel):
    message: Optional[str] = None


def get_reminder_service() -> reminders.ReminderService:
    return reminders.ReminderService()


def _queue_item(subject: Subject, appt: Appointment, message: Optional[str]) -> Dict[str, Any]:
    return {
        "subject": subject.model_dump(mode="json"),
        "appointment": appt.model_dump(mode="json"),
        "message": message,
        "whatsapp_link": reminders.whatsapp_link(subject.phone or "", message) if message and subject.phone else None,
    }


def _pair(session: TrackerSession, appointment_id: str) -> Tuple[Subject, Appointment]:
    appt = session.get_appointment(appointment_id)
    return session.get_subject(appt.subject_id), appt


@router.get("/communications/upcoming")
def upcoming(session: TrackerSession = Depends(get_session)):
    pairs = reminders.upcoming_reminders(session.snapshot, session.now())
    return [_queue_item(s, a, reminders.render_reminder(s, a)) for s, a in pairs]


@router.get("/communications/missed")
def missed(session: TrackerSession = Depends(get_session)):
    pairs = reminders.recent_missed(session.snapshot, session.now())
    return [_queue_item(s, a, None) for s, a in pairs]


@router.post("/communications/{appointment_id}/draft")
def draft(appointment_id: str, session: TrackerSession = Depends(get_session)):
    subject, appt = _pair(session, appointment_id)
    return _queue_item(subject, appt, draft_follow_up_message(subject, appt))


@router.post("/communications/{appointment_id}/send")
def send(appointment_id: str, payload: SendRequest, session: TrackerSession = Depends(get_session)):
    subject, appt = _pair(session, appointment_id)
    text = (payload.message or "").strip() or reminders.render_reminder(subject, appt)
    ok, info = send_reminder_email(subject, appt, text)
    return {"ok": ok, **({} if info is None else info)}


@router.post("/reminders/schedule")
def schedule_reminders(
    payload: reminders.ReminderConfig,
    session: TrackerSession = Depends(get_session),
    service: reminders.ReminderService = Depends(get_reminder_service),
):
    pairs = reminders.upcoming_reminders(session.snapshot, session.now())
    try:
        count = service.schedule(pairs, payload)
    except ExternalServiceError as e:
        logger.warning("Reminder scheduling failed: %s", e.message)
        return {"ok": False, "scheduled": 0, "error": e.message}
    return {"ok": True, "scheduled": count}


@router.get("/dashboard")
def dashboard(session: TrackerSession = Depends(get_session)):
    return stats.dashboard_summary(session.snapshot, session.now())


@router.get("/dashboard/insights")
def dashboard_insights(session: TrackerSession = Depends(get_session)):
    appts: List[Appointment] = sorted(active_appointments(session.snapshot), key=lambda a: a.date, reverse=True)
    return {"insight": analyze_attendance_trends(appts)}
