"""Appointment store lookups and whole-record replacement helpers."""
from __future__ import annotations

from typing import Iterable, List, Optional

from ..errors import AppointmentNotFound
from ..schema import Appointment, AppointmentStatus, Snapshot
from .subjects import active_ids


def find_appointment(snapshot: Snapshot, appointment_id: str) -> Optional[Appointment]:
    for a in snapshot.appointments:
        if a.id == appointment_id:
            return a
    return None


def get_appointment(snapshot: Snapshot, appointment_id: str) -> Appointment:
    appt = find_appointment(snapshot, appointment_id)
    if appt is None:
        raise AppointmentNotFound(f"Appointment '{appointment_id}' does not exist.")
    return appt


def list_appointments(
    snapshot: Snapshot,
    subject_id: Optional[str] = None,
    status: Optional[AppointmentStatus] = None,
) -> List[Appointment]:
    """Appointments in date order; history of exited subjects is still returned."""
    out = [
        a for a in snapshot.appointments
        if (subject_id is None or a.subject_id == subject_id)
        and (status is None or a.status == status)
    ]
    return sorted(out, key=lambda a: a.date)


def active_appointments(snapshot: Snapshot) -> List[Appointment]:
    ids = active_ids(snapshot)
    return [a for a in snapshot.appointments if a.subject_id in ids]


def replace_appointment(snapshot: Snapshot, appt: Appointment) -> Snapshot:
    appointments = [appt if a.id == appt.id else a for a in snapshot.appointments]
    return snapshot.model_copy(update={"appointments": appointments})


def add_appointments(snapshot: Snapshot, appts: Iterable[Appointment]) -> Snapshot:
    appts = list(appts)
    if not appts:
        return snapshot
    return snapshot.model_copy(update={"appointments": [*snapshot.appointments, *appts]})
