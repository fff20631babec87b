"""Appointment lifecycle engine.

States are Scheduled (initial), Missed (correctable), Completed and Cancelled.
Every operation here validates the whole request against the given snapshot
before building the next one, so a rejected call leaves no trace: no changed
record and no log entry.

Completion always carries exactly one follow-up: a new Scheduled appointment
for the same subject, or the subject's exit from the study.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from .. import config
from ..errors import (
    CorrectionWindowExceeded,
    FutureMissedNotAllowed,
    InvalidStatusTransition,
    MissingFollowUpChoice,
    MissingReasonText,
    PastRescheduleDate,
)
from ..schema import (
    Appointment,
    AppointmentStatus,
    ChangeLogEntry,
    ChangeType,
    CompletionResult,
    ExitReason,
    NextAppointment,
    Outcome,
    Snapshot,
    Subject,
    SubjectExit,
)
from ..utils import append_note, fmt_day, fmt_instant, start_of_day, to_local_naive
from . import changelog
from .appointments import add_appointments, get_appointment, replace_appointment
from .subjects import display_name, get_subject, remove_subject

logger = logging.getLogger(__name__)

_OPEN_STATES = (AppointmentStatus.SCHEDULED, AppointmentStatus.MISSED)


def _status_entry(
    snapshot: Snapshot,
    appt: Appointment,
    new_status: AppointmentStatus,
    comment: str,
    *,
    now: datetime,
) -> ChangeLogEntry:
    return changelog.make_entry(
        ChangeType.UPDATE,
        appt.subject_id,
        display_name(snapshot, appt.subject_id),
        f"Status: {appt.status.value} -> {new_status.value}",
        comment,
        now=now,
    )


def _booking_entry(snapshot: Snapshot, appt: Appointment, comment: str, *, now: datetime) -> ChangeLogEntry:
    return changelog.make_entry(
        ChangeType.CREATE,
        appt.subject_id,
        display_name(snapshot, appt.subject_id),
        f"Booked appointment for {fmt_instant(appt.date)}",
        comment,
        now=now,
    )


def _require_open(appt: Appointment, target: str) -> None:
    if appt.status not in _OPEN_STATES:
        raise InvalidStatusTransition(
            f"Cannot move a {appt.status.value} appointment to {target}."
        )


# ---------- bootstrap ----------

def run_auto_miss(snapshot: Snapshot, *, now: datetime) -> Outcome:
    """Mark every Scheduled appointment dated before ``now`` as Missed.

    Running it again with the same ``now`` is a no-op.
    """
    entries = []
    missed_ids = []
    appointments = []
    for appt in snapshot.appointments:
        if appt.status == AppointmentStatus.SCHEDULED and appt.date < now:
            entries.append(
                _status_entry(snapshot, appt, AppointmentStatus.MISSED, config.AUTO_MISS_COMMENT, now=now)
            )
            missed_ids.append(appt.id)
            appt = appt.model_copy(update={
                "status": AppointmentStatus.MISSED,
                "follow_up_reason": config.AUTO_MISS_REASON,
                "notes": append_note(appt.notes, config.AUTO_MISS_NOTE),
            })
        appointments.append(appt)

    if not entries:
        return Outcome(snapshot, [], [])
    logger.info("Auto-miss pass marked %d appointment(s) as missed", len(entries))
    nxt = snapshot.model_copy(update={"appointments": appointments})
    return Outcome(changelog.append(nxt, entries), entries, missed_ids)


# ---------- booking / status / reschedule ----------

def book_appointment(
    snapshot: Snapshot,
    subject_id: str,
    when: datetime,
    notes: Optional[str] = None,
    *,
    now: datetime,
) -> Outcome:
    subject = get_subject(snapshot, subject_id)
    appt = Appointment(subject_id=subject.id, date=when, notes=notes or None)
    entry = _booking_entry(snapshot, appt, notes or "Appointment booked", now=now)
    nxt = add_appointments(snapshot, [appt])
    return Outcome(changelog.append(nxt, [entry]), [entry], appt)


def update_appointment_status(
    snapshot: Snapshot,
    appointment_id: str,
    status: Union[AppointmentStatus, str],
    reason: Optional[str] = None,
    *,
    now: datetime,
) -> Outcome:
    appt = get_appointment(snapshot, appointment_id)
    status = AppointmentStatus(status)

    if status == AppointmentStatus.COMPLETED:
        raise MissingFollowUpChoice(
            "Completing an appointment requires scheduling the next visit or exiting the subject."
        )
    if status == AppointmentStatus.SCHEDULED:
        raise InvalidStatusTransition("Use reschedule to move an appointment back to Scheduled.")
    _require_open(appt, status.value)

    update = {"status": status}
    reason_text = (reason or "").strip()
    if status == AppointmentStatus.MISSED:
        if appt.date > now:
            raise FutureMissedNotAllowed(
                "You cannot record a 'Missed' status for a future appointment."
            )
        if reason is None:
            raise MissingReasonText("A reason must be supplied when recording a missed appointment.")
    if reason_text:
        update["follow_up_reason"] = reason_text

    updated = appt.model_copy(update=update)
    entries = []
    if appt.status != status:
        comment = f"Manual change. {reason_text}".strip()
        entries.append(_status_entry(snapshot, appt, status, comment, now=now))
    nxt = replace_appointment(snapshot, updated)
    return Outcome(changelog.append(nxt, entries), entries, updated)


def reschedule_appointment(
    snapshot: Snapshot,
    appointment_id: str,
    new_date: datetime,
    *,
    now: datetime,
) -> Outcome:
    appt = get_appointment(snapshot, appointment_id)
    _require_open(appt, AppointmentStatus.SCHEDULED.value)
    new_date = to_local_naive(new_date)
    if new_date <= start_of_day(now):
        raise PastRescheduleDate(
            "Rescheduling must be to a future date. To record a past visit, use the correction flow."
        )

    updated = appt.model_copy(update={
        "date": new_date,
        "status": AppointmentStatus.SCHEDULED,
        "notes": append_note(appt.notes, f"[System: Rescheduled from {fmt_day(appt.date)}]"),
    })
    details = f"Rescheduled: {fmt_instant(appt.date)} -> {fmt_instant(new_date)}"
    if appt.status != AppointmentStatus.SCHEDULED:
        details += f"; Status: {appt.status.value} -> {AppointmentStatus.SCHEDULED.value}"
    entry = changelog.make_entry(
        ChangeType.UPDATE,
        appt.subject_id,
        display_name(snapshot, appt.subject_id),
        details,
        "Appointment rescheduled",
        now=now,
    )
    nxt = replace_appointment(snapshot, updated)
    return Outcome(changelog.append(nxt, [entry]), [entry], updated)


# ---------- exit ----------

def exit_comment(exit_: SubjectExit) -> str:
    if exit_.reason == ExitReason.OTHER:
        label = f"OTHER: {(exit_.other_reason or '').strip()}"
    else:
        label = exit_.reason.value
    approx = " (approx)" if exit_.approximate else ""
    return f"Exit Study: {label} on {fmt_day(exit_.exit_date)}{approx}"


def _validate_exit(snapshot: Snapshot, subject_id: str, exit_: SubjectExit) -> Subject:
    subject = get_subject(snapshot, subject_id)
    if exit_.reason == ExitReason.OTHER and not (exit_.other_reason or "").strip():
        raise MissingReasonText("Please specify the 'Other' reason.")
    return subject


def _apply_exit(
    snapshot: Snapshot, subject: Subject, exit_: SubjectExit, *, now: datetime
) -> Tuple[Snapshot, ChangeLogEntry]:
    entry = changelog.make_entry(
        ChangeType.DELETE,
        subject.id,
        subject.name,
        "Exited Subject from study",
        exit_comment(exit_),
        now=now,
    )
    return remove_subject(snapshot, subject.id), entry


def exit_subject(snapshot: Snapshot, subject_id: str, exit_: SubjectExit, *, now: datetime) -> Outcome:
    subject = _validate_exit(snapshot, subject_id, exit_)
    nxt, entry = _apply_exit(snapshot, subject, exit_, now=now)
    logger.info("Subject %s exited: %s", subject.id, entry.comment)
    return Outcome(changelog.append(nxt, [entry]), [entry], subject)


# ---------- completion ----------

def within_correction_window(attended: Union[date, datetime], now: datetime) -> bool:
    """Inclusive ``now - 5 days <= attended <= now``; bare dates compare by day."""
    floor = now - timedelta(days=config.CORRECTION_WINDOW_DAYS)
    if isinstance(attended, datetime):
        attended = to_local_naive(attended)
        return floor <= attended <= now
    return floor.date() <= attended <= now.date()


def _attended_instant(appt: Appointment, attended: Union[date, datetime]) -> datetime:
    if isinstance(attended, datetime):
        return to_local_naive(attended)
    # keep the originally booked time of day
    return datetime.combine(attended, appt.date.time())


def complete_appointment(
    snapshot: Snapshot,
    appointment_id: str,
    attended: Union[date, datetime],
    approximate: bool = False,
    follow_up: Union[NextAppointment, SubjectExit, None] = None,
    *,
    now: datetime,
) -> Outcome:
    appt = get_appointment(snapshot, appointment_id)
    _require_open(appt, AppointmentStatus.COMPLETED.value)
    if follow_up is None:
        raise MissingFollowUpChoice("Please either schedule the next appointment or exit the study.")
    if appt.status == AppointmentStatus.MISSED and not within_correction_window(attended, now):
        raise CorrectionWindowExceeded(
            f"Corrected visits must fall within the last {config.CORRECTION_WINDOW_DAYS} days."
        )

    subject = get_subject(snapshot, appt.subject_id)
    if isinstance(follow_up, NextAppointment):
        if to_local_naive(follow_up.date) <= start_of_day(now):
            raise PastRescheduleDate("The next appointment must be in the future.")
    else:
        subject = _validate_exit(snapshot, appt.subject_id, follow_up)

    attended_at = _attended_instant(appt, attended)
    approx = " (approx)" if approximate else ""
    completed = appt.model_copy(update={
        "status": AppointmentStatus.COMPLETED,
        "date": attended_at,
        "follow_up_reason": None,
        "notes": append_note(appt.notes, f"[Attended on {fmt_day(attended_at)}{approx}]"),
    })
    entries = [
        _status_entry(
            snapshot, appt, AppointmentStatus.COMPLETED, f"Attended on {fmt_day(attended_at)}{approx}", now=now
        )
    ]
    nxt = replace_appointment(snapshot, completed)
    result = CompletionResult(appointment=completed)

    if isinstance(follow_up, NextAppointment):
        next_appt = Appointment(subject_id=subject.id, date=follow_up.date, notes=follow_up.notes or None)
        nxt = add_appointments(nxt, [next_appt])
        entries.append(_booking_entry(snapshot, next_appt, "Next visit scheduled on completion", now=now))
        result = result.model_copy(update={"next_appointment": next_appt})
    else:
        nxt, exit_entry = _apply_exit(nxt, subject, follow_up, now=now)
        entries.append(exit_entry)
        result = result.model_copy(update={"exited_subject": subject})

    return Outcome(changelog.append(nxt, entries), entries, result)
