from datetime import timedelta
from io import BytesIO

import pandas as pd
import pytest

from tracker.routes.comms import get_reminder_service
from tracker.services.reminders import ReminderService

from .conftest import NOW


def test_health(client):
    assert client.get("/health").json()["ok"] is True


def test_subject_crud(client):
    r = client.post("/subjects", json={"id": "M010", "name": "Meera", "comment": "Enrolled"})
    assert r.status_code == 201
    assert r.json()["notes"] == "Manually added"

    r = client.patch("/subjects/M010", json={"changes": {"phone": "12345"}, "comment": "Added phone"})
    assert r.json()["phone"] == "12345"

    assert client.get("/subjects/M010").json()["name"] == "Meera"
    assert {s["id"] for s in client.get("/subjects").json()} == {"A001", "S002", "M010"}


def test_subject_errors(client):
    r = client.post("/subjects", json={"id": "A001", "name": "Dup", "comment": "x"})
    assert r.status_code == 422
    assert r.json()["error"] == "duplicate_subject_id"

    r = client.post("/subjects", json={"id": "M011", "name": "No comment"})
    assert r.json()["error"] == "missing_required_comment"

    r = client.get("/subjects/Z999")
    assert r.status_code == 404
    assert r.json()["error"] == "subject_not_found"


def test_exit_and_history(client):
    r = client.post("/subjects/S002/exit", json={"reason": "OTHER", "exit_date": "2026-10-19"})
    assert r.json()["error"] == "missing_reason_text"

    r = client.post(
        "/subjects/S002/exit",
        json={"reason": "OTHER", "exit_date": "2026-10-19", "other_reason": "Moved city"},
    )
    assert r.status_code == 200
    assert "S002" not in {s["id"] for s in client.get("/subjects").json()}
    assert [a["id"] for a in client.get("/subjects/S002/appointments").json()] == ["appt-missed"]

    log = client.get("/changelog", params={"change_type": "DELETE"}).json()
    assert len(log) == 1
    assert log[0]["comment"] == "Exit Study: OTHER: Moved city on 2026-10-19"


def test_status_endpoints(client):
    r = client.post("/appointments/appt-future/status", json={"status": "Missed", "reason": "x"})
    assert r.status_code == 422
    assert r.json()["error"] == "future_missed_not_allowed"
    assert client.get("/appointments/appt-future").json()["status"] == "Scheduled"

    r = client.post("/appointments/nope/status", json={"status": "Cancelled"})
    assert r.status_code == 404

    tomorrow = (NOW + timedelta(days=1)).isoformat()
    r = client.post("/appointments/appt-missed/reschedule", json={"date": tomorrow})
    assert r.json()["status"] == "Scheduled"
    assert r.json()["id"] == "appt-missed"


def test_complete_endpoint(client):
    r = client.post("/appointments/appt-missed/complete", json={"attended": "2026-10-18"})
    assert r.json()["error"] == "missing_follow_up_choice"

    r = client.post("/appointments/appt-missed/complete", json={
        "attended": "2026-10-13",
        "follow_up": {"kind": "next_appointment", "date": "2026-11-20T10:00:00"},
    })
    assert r.json()["error"] == "correction_window_exceeded"

    r = client.post("/appointments/appt-missed/complete", json={
        "attended": "2026-10-14",
        "approximate": True,
        "follow_up": {"kind": "next_appointment", "date": "2026-11-20T10:00:00"},
    })
    body = r.json()
    assert r.status_code == 200
    assert body["appointment"]["status"] == "Completed"
    assert body["next_appointment"]["status"] == "Scheduled"
    assert body["exited_subject"] is None

    r = client.post("/appointments/appt-future/complete", json={
        "attended": "2026-10-19",
        "follow_up": {"kind": "exit", "reason": "OTHER", "exit_date": "2026-10-19", "other_reason": ""},
    })
    assert r.status_code == 422
    assert r.json()["error"] == "missing_reason_text"
    assert client.get("/appointments/appt-future").json()["status"] == "Scheduled"
    assert "A001" in {s["id"] for s in client.get("/subjects").json()}
    assert client.get("/changelog", params={"change_type": "DELETE"}).json() == []

    r = client.post("/appointments/appt-future/complete", json={
        "attended": "2026-10-19T11:00:00",
        "follow_up": {"kind": "exit", "reason": "COMPLETED", "exit_date": "2026-10-19"},
    })
    assert r.json()["exited_subject"]["id"] == "A001"


def test_book_and_filter(client):
    r = client.post("/subjects/A001/appointments", json={"date": "2026-12-01T09:30:00", "notes": "Month 12"})
    assert r.status_code == 201
    scheduled = client.get("/appointments", params={"status": "Scheduled", "subject_id": "A001"}).json()
    assert len(scheduled) == 2


def test_bulk_preview_and_import(client):
    text = "A001\tAsha Verma\t111\t\t01/11/2026\tX\nB9\tBee\t\t\t99/99/2026\t\n"
    preview = client.post("/bulk/preview", json={"text": text}).json()
    assert preview["valid"] == 1 and preview["invalid"] == 1

    summary = client.post("/bulk/import", json={"text": text}).json()
    assert summary == {
        "subjects_created": 0,
        "subjects_updated": 1,
        "appointments_created": 1,
        "rows_skipped": 1,
    }


def test_bulk_upload(client):
    buf = BytesIO()
    pd.DataFrame([
        ["ID", "Name", "Mobile", "Alt", "Inserted", "V1"],
        ["N100", "Nita", "5551234", "", "", "10/11/2026"],
    ]).to_excel(buf, index=False, header=False, engine="openpyxl")
    buf.seek(0)

    r = client.post("/bulk/upload", files={"file": ("book.xlsx", buf, "application/octet-stream")})
    assert r.json()["subjects_created"] == 1

    r = client.post("/bulk/upload", files={"file": ("bad.xlsx", BytesIO(b"nope"), "application/octet-stream")})
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_workbook"


def test_exports(client):
    r = client.get("/export/calendar", params={"mode": "ALL"})
    assert r.status_code == 200
    assert "ProTrack_ALL_ALL_all.xlsx" in r.headers["content-disposition"]

    r = client.get("/export/calendar", params={"site": "MEERUT"})
    assert r.status_code == 422
    assert r.json()["error"] == "nothing_to_export"

    r = client.get("/export/calendar", params={"start_month": "2026-13"})
    assert r.json()["error"] == "invalid_filter"

    assert client.get("/export/exited").json()["error"] == "nothing_to_export"

    client.post("/subjects", json={"id": "M1", "name": "M", "comment": "c"})
    r = client.get("/changelog/report.pdf")
    assert r.headers["content-type"] == "application/pdf"


def test_communications(client, monkeypatch):
    upcoming = client.get("/communications/upcoming").json()
    assert [i["appointment"]["id"] for i in upcoming] == ["appt-future"]
    assert upcoming[0]["whatsapp_link"].startswith("https://wa.me/919876543210?text=Hello%20Asha")

    missed = client.get("/communications/missed").json()
    assert [i["subject"]["id"] for i in missed] == ["S002"]

    monkeypatch.setattr("tracker.routes.comms.draft_follow_up_message", lambda s, a: f"Hi {s.name}")
    r = client.post("/communications/appt-missed/draft").json()
    assert r["message"] == "Hi Sunil Rao"

    r = client.post("/communications/appt-missed/send", json={"message": "Please call"}).json()
    assert r["ok"] is False
    assert r["eml_path"].endswith(".eml")


def test_reminder_schedule(client, tmp_path):
    from fastapi_app import app

    app.dependency_overrides[get_reminder_service] = lambda: ReminderService(path=tmp_path / "rem.xlsx")
    r = client.post("/reminders/schedule", json={"days_before": 2}).json()
    assert r == {"ok": True, "scheduled": 1}

    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    app.dependency_overrides[get_reminder_service] = lambda: ReminderService(path=blocker / "rem.xlsx")
    r = client.post("/reminders/schedule", json={}).json()
    assert r["ok"] is False


@pytest.mark.parametrize("path", ["/dashboard", "/dashboard/insights"])
def test_dashboard(client, monkeypatch, path):
    monkeypatch.setattr("tracker.routes.comms.analyze_attendance_trends", lambda appts: f"{len(appts)} records")
    body = client.get(path).json()
    if path == "/dashboard":
        assert body["total_subjects"] == 2
        assert body["upcoming"] == 1
    else:
        assert body == {"insight": "2 records"}
