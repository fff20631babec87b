from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Any, Callable, List, Optional, Union

from . import config
from .errors import TrackerError
from .schema import (
    Appointment,
    AppointmentStatus,
    BulkRow,
    ChangeLogEntry,
    ChangeType,
    CompletionResult,
    ExitReason,
    ImportSummary,
    NextAppointment,
    Outcome,
    Snapshot,
    Subject,
    SubjectExit,
    SubjectUpdate,
)
from .services import appointments, changelog, lifecycle, reconciliation, subjects
from .services.persistence import JsonFileStore, SnapshotStore, load_snapshot, save_snapshot

logger = logging.getLogger(__name__)


class TrackerSession:
    """
    Single-session owner of the Directory + Store + Log snapshot.

    Each operation runs a pure core function against the current snapshot,
    swaps in the returned snapshot, then asks the store to replace its copy.
    A failed save is logged and never rolls back the in-memory state.
    """

    def __init__(self, store: SnapshotStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self._snapshot = Snapshot()
        self._lock = threading.Lock()
        self.bootstrapped = False

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def now(self) -> datetime:
        return self.clock()

    def bootstrap(self) -> Outcome:
        with self._lock:
            self._snapshot = load_snapshot(self.store)
            outcome = lifecycle.run_auto_miss(self._snapshot, now=self.now())
            self._commit(outcome)
            self.bootstrapped = True
        return outcome

    def _commit(self, outcome: Outcome) -> Any:
        # caller holds self._lock
        self._snapshot = outcome.snapshot
        save_snapshot(self.store, self._snapshot)
        return outcome.result

    def _run(self, fn: Callable[..., Outcome], *args, **kwargs) -> Any:
        # routes run in a threadpool; read, compute, swap and save as one step
        with self._lock:
            try:
                outcome = fn(self._snapshot, *args, now=self.now(), **kwargs)
            except TrackerError as e:
                logger.info("%s rejected: %s", fn.__name__, e.message)
                raise
            return self._commit(outcome)

    # ---------- subjects ----------
    def list_subjects(self) -> List[Subject]:
        return subjects.list_subjects(self._snapshot)

    def get_subject(self, subject_id: str) -> Subject:
        return subjects.get_subject(self._snapshot, subject_id)

    def create_subject(self, subject: Subject, comment: str) -> Subject:
        return self._run(subjects.create_subject, subject, comment)

    def update_subject(self, subject_id: str, changes: SubjectUpdate, comment: str) -> Subject:
        return self._run(subjects.update_subject, subject_id, changes, comment)

    def exit_subject(
        self,
        subject_id: str,
        reason: ExitReason,
        exit_date: date,
        approximate: bool = False,
        other_reason: Optional[str] = None,
    ) -> Subject:
        exit_ = SubjectExit(reason=reason, exit_date=exit_date, approximate=approximate, other_reason=other_reason)
        return self._run(lifecycle.exit_subject, subject_id, exit_)

    # ---------- appointments ----------
    def list_appointments(
        self, subject_id: Optional[str] = None, status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        return appointments.list_appointments(self._snapshot, subject_id=subject_id, status=status)

    def get_appointment(self, appointment_id: str) -> Appointment:
        return appointments.get_appointment(self._snapshot, appointment_id)

    def book_appointment(self, subject_id: str, when: datetime, notes: Optional[str] = None) -> Appointment:
        return self._run(lifecycle.book_appointment, subject_id, when, notes)

    def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, reason: Optional[str] = None
    ) -> Appointment:
        return self._run(lifecycle.update_appointment_status, appointment_id, status, reason)

    def reschedule_appointment(self, appointment_id: str, new_date: datetime) -> Appointment:
        return self._run(lifecycle.reschedule_appointment, appointment_id, new_date)

    def complete_appointment(
        self,
        appointment_id: str,
        attended: Union[date, datetime],
        approximate: bool = False,
        follow_up: Union[NextAppointment, SubjectExit, None] = None,
    ) -> CompletionResult:
        return self._run(lifecycle.complete_appointment, appointment_id, attended, approximate, follow_up)

    # ---------- bulk / log ----------
    def import_bulk(self, rows: List[BulkRow]) -> ImportSummary:
        return self._run(reconciliation.import_bulk, rows)

    def list_change_log(
        self, change_type: Optional[ChangeType] = None, subject_id: Optional[str] = None
    ) -> List[ChangeLogEntry]:
        return changelog.list_entries(self._snapshot.change_log, change_type=change_type, subject_id=subject_id)


# one process-wide session that all routers share
_SESSION: Optional[TrackerSession] = None
_SESSION_LOCK = threading.Lock()


def get_session() -> TrackerSession:
    global _SESSION
    with _SESSION_LOCK:
        if _SESSION is None:
            _SESSION = TrackerSession(JsonFileStore(config.DATA_DIR))
        if not _SESSION.bootstrapped:
            _SESSION.bootstrap()
    return _SESSION
