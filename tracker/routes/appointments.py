# tracker/routes/appointments.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator

from ..schema import Appointment, AppointmentStatus, CompletionResult, FollowUp
from ..state import TrackerSession, get_session

router = APIRouter(prefix="/appointments", tags=["appointments"])


class StatusRequest(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None


class RescheduleRequest(BaseModel):
    date: datetime


class CompleteRequest(BaseModel):
    attended: Union[datetime, date]
    approximate: bool = False
    follow_up: Optional[FollowUp] = None

    @field_validator("attended", mode="before")
    @classmethod
    def _bare_date(cls, v):
        # "YYYY-MM-DD" means a calendar day, anything longer an instant
        if isinstance(v, str):
            v = v.strip()
            return date.fromisoformat(v) if len(v) == 10 else datetime.fromisoformat(v)
        return v


@router.get("", response_model=List[Appointment])
def list_appointments(
    status: Optional[AppointmentStatus] = Query(None),
    subject_id: Optional[str] = Query(None),
    session: TrackerSession = Depends(get_session),
):
    return session.list_appointments(subject_id=subject_id, status=status)


@router.get("/{appointment_id}", response_model=Appointment)
def get_appointment(appointment_id: str, session: TrackerSession = Depends(get_session)):
    return session.get_appointment(appointment_id)


@router.post("/{appointment_id}/status", response_model=Appointment)
def update_status(appointment_id: str, payload: StatusRequest, session: TrackerSession = Depends(get_session)):
    return session.update_appointment_status(appointment_id, payload.status, payload.reason)


@router.post("/{appointment_id}/reschedule", response_model=Appointment)
def reschedule(appointment_id: str, payload: RescheduleRequest, session: TrackerSession = Depends(get_session)):
    return session.reschedule_appointment(appointment_id, payload.date)


@router.post("/{appointment_id}/complete", response_model=CompletionResult)
def complete(appointment_id: str, payload: CompleteRequest, session: TrackerSession = Depends(get_session)):
    """
    Mark a visit attended. ``follow_up`` must be either
    ``{"kind": "next_appointment", "date": ...}`` or
    ``{"kind": "exit", "reason": ..., "exit_date": ...}``.
    """
    return session.complete_appointment(
        appointment_id,
        payload.attended,
        approximate=payload.approximate,
        follow_up=payload.follow_up,
    )
