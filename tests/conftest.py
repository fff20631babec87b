from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from tracker import config
from tracker.schema import Appointment, AppointmentStatus, Snapshot, Subject
from tracker.services.persistence import MemoryStore
from tracker.state import TrackerSession, get_session

NOW = datetime(2026, 10, 19, 12, 0)


def make_subject(subject_id: str = "A001", name: str = "Asha Verma", **kw) -> Subject:
    kw.setdefault("phone", "+91 98765 43210")
    kw.setdefault("insertion_date", datetime(2026, 1, 5))
    return Subject(id=subject_id, name=name, **kw)


def make_appt(subject_id: str, when: datetime, status=AppointmentStatus.SCHEDULED, **kw) -> Appointment:
    return Appointment(subject_id=subject_id, date=when, status=status, **kw)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATA_DIR", tmp_path)
    monkeypatch.setattr(config, "EXPORTS_DIR", tmp_path / "exports")
    monkeypatch.setattr(config, "OUTBOX_DIR", tmp_path / "outbox")
    monkeypatch.setattr(config, "REMINDERS_XLSX", tmp_path / "reminders.xlsx")
    monkeypatch.setattr(config, "SMTP_USERNAME", "")
    monkeypatch.setattr(config, "SMTP_PASSWORD", "")
    return tmp_path


@pytest.fixture
def snapshot() -> Snapshot:
    """Two active subjects: A001 with a visit tomorrow, S002 with a visit yesterday that was missed."""
    return Snapshot(
        subjects=[make_subject("A001", "Asha Verma"), make_subject("S002", "Sunil Rao", email="sunil@example.com")],
        appointments=[
            make_appt("A001", NOW + timedelta(days=1), id="appt-future"),
            make_appt(
                "S002",
                NOW - timedelta(days=1),
                status=AppointmentStatus.MISSED,
                follow_up_reason="No show",
                id="appt-missed",
            ),
        ],
    )


@pytest.fixture
def store(snapshot) -> MemoryStore:
    store = MemoryStore()
    store.save(config.SUBJECTS_KEY, [s.model_dump(mode="json") for s in snapshot.subjects])
    store.save(config.APPOINTMENTS_KEY, [a.model_dump(mode="json") for a in snapshot.appointments])
    return store


@pytest.fixture
def session(store) -> TrackerSession:
    session = TrackerSession(store, clock=lambda: NOW)
    session.bootstrap()
    return session


@pytest.fixture
def client(session):
    from fastapi_app import app

    app.dependency_overrides[get_session] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()
