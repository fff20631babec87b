"""
Language-model drafting for participant messages and attendance insight.

Both entry points never raise: any failure of the model call (missing key,
network, provider error) is logged and replaced by a fixed fallback text.
"""
from __future__ import annotations

import json
import logging
from typing import Iterable, Optional

from langchain_core.runnables import Runnable

from tracker.schema import Appointment, AppointmentStatus, Subject

from . import llm

logger = logging.getLogger(__name__)

DRAFT_FAILED = "Error generating message. Please check your network or API key."
DRAFT_EMPTY = "Could not generate message."
INSIGHT_FAILED = "Could not analyze trends at this time."
INSIGHT_EMPTY = "No insights available."

TREND_SAMPLE_SIZE = 20

_CONTEXT = {
    AppointmentStatus.MISSED: "The participant missed this appointment. Ask them to reschedule.",
    AppointmentStatus.SCHEDULED: "Remind the participant about the upcoming appointment.",
}


def draft_follow_up_message(
    subject: Subject,
    appointment: Appointment,
    chain: Optional[Runnable] = None,
) -> str:
    context = _CONTEXT.get(appointment.status, "Send a courteous follow-up.")
    try:
        chain = chain or llm.follow_up_chain()
        text = chain.invoke({
            "name": subject.name,
            "date": appointment.date.strftime("%d/%m/%Y"),
            "status": appointment.status.value,
            "context": context,
        })
    except Exception:
        logger.warning("Follow-up draft for %s failed", subject.id, exc_info=True)
        return DRAFT_FAILED
    return (text or "").strip() or DRAFT_EMPTY


def analyze_attendance_trends(
    appointments: Iterable[Appointment],
    chain: Optional[Runnable] = None,
) -> str:
    sample = [
        {"date": a.date.strftime("%Y-%m-%d"), "status": a.status.value, "reason": a.follow_up_reason or ""}
        for a in list(appointments)[:TREND_SAMPLE_SIZE]
    ]
    try:
        chain = chain or llm.trends_chain()
        text = chain.invoke({"appointments": json.dumps(sample)})
    except Exception:
        logger.warning("Attendance analysis failed", exc_info=True)
        return INSIGHT_FAILED
    return (text or "").strip() or INSIGHT_EMPTY
