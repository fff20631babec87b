# tracker/routes/subjects.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from ..schema import Appointment, ExitReason, Subject, SubjectUpdate
from ..state import TrackerSession, get_session

router = APIRouter(prefix="/subjects", tags=["subjects"])


class SubjectCreate(BaseModel):
    id: str = ""
    name: str = ""
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    alt_phone: Optional[str] = None
    insertion_date: Optional[datetime] = None
    notes: Optional[str] = None
    comment: str = ""


class SubjectPatch(BaseModel):
    changes: SubjectUpdate
    comment: str = ""


class ExitRequest(BaseModel):
    reason: ExitReason
    exit_date: date
    approximate: bool = False
    other_reason: Optional[str] = None


class BookRequest(BaseModel):
    date: datetime
    notes: Optional[str] = None


@router.get("", response_model=List[Subject])
def list_subjects(session: TrackerSession = Depends(get_session)):
    return session.list_subjects()


@router.post("", response_model=Subject, status_code=201)
def create_subject(payload: SubjectCreate, session: TrackerSession = Depends(get_session)):
    subject = Subject(**payload.model_dump(exclude={"comment"}))
    return session.create_subject(subject, payload.comment)


@router.get("/{subject_id}", response_model=Subject)
def get_subject(subject_id: str, session: TrackerSession = Depends(get_session)):
    return session.get_subject(subject_id)


@router.patch("/{subject_id}", response_model=Subject)
def update_subject(subject_id: str, payload: SubjectPatch, session: TrackerSession = Depends(get_session)):
    return session.update_subject(subject_id, payload.changes, payload.comment)


@router.post("/{subject_id}/exit", response_model=Subject)
def exit_subject(subject_id: str, payload: ExitRequest, session: TrackerSession = Depends(get_session)):
    """Remove the subject from the active directory; its appointments and history stay."""
    return session.exit_subject(
        subject_id,
        reason=payload.reason,
        exit_date=payload.exit_date,
        approximate=payload.approximate,
        other_reason=payload.other_reason,
    )


@router.get("/{subject_id}/appointments", response_model=List[Appointment])
def subject_appointments(subject_id: str, session: TrackerSession = Depends(get_session)):
    # history stays readable after the subject exits
    return session.list_appointments(subject_id=subject_id.strip())


@router.post("/{subject_id}/appointments", response_model=Appointment, status_code=201)
def book_appointment(subject_id: str, payload: BookRequest, session: TrackerSession = Depends(get_session)):
    return session.book_appointment(subject_id, payload.date, payload.notes)
