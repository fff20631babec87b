from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .utils import to_local_naive


def _new_id() -> str:
    return str(uuid.uuid4())


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    MISSED = "Missed"
    CANCELLED = "Cancelled"


class ChangeType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ExitReason(str, Enum):
    REMOVAL = "REMOVAL"
    EXPULSION = "EXPULSION"
    COMPLETED = "COMPLETED"
    OTHER = "OTHER"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class Subject(_Record):
    id: str
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    alt_phone: Optional[str] = None
    insertion_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("insertion_date")
    @classmethod
    def _local_insertion_date(cls, v):
        return to_local_naive(v) if v is not None else v


class Appointment(_Record):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    date: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    follow_up_reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _local_date(cls, v):
        return to_local_naive(v)


class ChangeLogEntry(_Record):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime
    subject_id: str
    subject_name: str
    change_type: ChangeType
    details: str
    comment: str


class Snapshot(_Record):
    subjects: List[Subject] = Field(default_factory=list)
    appointments: List[Appointment] = Field(default_factory=list)
    change_log: List[ChangeLogEntry] = Field(default_factory=list)


class SubjectUpdate(BaseModel):
    """Editable subject fields; only explicitly set fields are applied."""

    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    alt_phone: Optional[str] = None
    insertion_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("insertion_date")
    @classmethod
    def _local_insertion_date(cls, v):
        return to_local_naive(v) if v is not None else v


class NextAppointment(BaseModel):
    kind: Literal["next_appointment"] = "next_appointment"
    date: datetime
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _local_date(cls, v):
        return to_local_naive(v)


class SubjectExit(BaseModel):
    kind: Literal["exit"] = "exit"
    reason: ExitReason
    exit_date: date
    approximate: bool = False
    other_reason: Optional[str] = None


FollowUp = Annotated[Union[NextAppointment, SubjectExit], Field(discriminator="kind")]


class BulkRow(BaseModel):
    """One externally tokenized bulk-entry row."""

    subject_id: str = ""
    name: str = ""
    phone: str = ""
    alt_phone: str = ""
    insertion_date: Optional[datetime] = None
    appointment_date: Optional[datetime] = None
    remark: str = ""

    @field_validator("insertion_date", "appointment_date")
    @classmethod
    def _local_dates(cls, v):
        return to_local_naive(v) if v is not None else v


class ImportSummary(BaseModel):
    subjects_created: int = 0
    subjects_updated: int = 0
    appointments_created: int = 0
    rows_skipped: int = 0


@dataclass(frozen=True)
class Outcome:
    """Result of a core operation: the next snapshot plus what it produced."""

    snapshot: Snapshot
    entries: List[ChangeLogEntry] = field(default_factory=list)
    result: Any = None


class CompletionResult(BaseModel):
    appointment: Appointment
    next_appointment: Optional[Appointment] = None
    exited_subject: Optional[Subject] = None
