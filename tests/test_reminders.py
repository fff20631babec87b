from datetime import timedelta

import pandas as pd
import pytest

from tracker import config
from tracker.errors import ExternalServiceError
from tracker.schema import AppointmentStatus, Snapshot
from tracker.services import notify, reminders, stats

from .conftest import NOW, make_appt, make_subject


@pytest.fixture
def study():
    return Snapshot(
        subjects=[make_subject("A001", "Asha", phone="+91-98765-43210"), make_subject("S002", "Sunil")],
        appointments=[
            make_appt("A001", NOW + timedelta(days=2), id="soon"),
            make_appt("A001", NOW + timedelta(days=8), id="later"),
            make_appt("S002", NOW - timedelta(days=3), status=AppointmentStatus.MISSED, id="missed-recent"),
            make_appt("S002", NOW - timedelta(days=45), status=AppointmentStatus.MISSED, id="missed-old"),
            make_appt("GONE", NOW + timedelta(days=1), id="exited"),
            make_appt("A001", NOW - timedelta(days=60), status=AppointmentStatus.COMPLETED, id="done"),
        ],
    )


def test_render_default_template(study):
    subject, appt = study.subjects[0], study.appointments[0]
    assert reminders.render_reminder(subject, appt) == (
        "Hello Asha, this is a reminder for your appointment on 21/10/2026. Please confirm your availability."
    )
    assert reminders.render_reminder(subject, appt, "{name}|{date}|{name}") == "Asha|21/10/2026|Asha"


def test_upcoming_window_and_active_subjects_only(study):
    pairs = reminders.upcoming_reminders(study, NOW)
    assert [a.id for _, a in pairs] == ["soon"]


def test_recent_missed_window(study):
    pairs = reminders.recent_missed(study, NOW)
    assert [a.id for _, a in pairs] == ["missed-recent"]
    assert pairs[0][0].id == "S002"


def test_whatsapp_link():
    link = reminders.whatsapp_link("+91-98765 43210", "Hi there & bye")
    assert link == "https://wa.me/919876543210?text=Hi%20there%20%26%20bye"


def test_schedule_appends_rows(study, tmp_path):
    service = reminders.ReminderService(path=tmp_path / "r.xlsx")
    pairs = reminders.upcoming_reminders(study, NOW)

    assert service.schedule(pairs, reminders.ReminderConfig(days_before=1)) == 1
    assert service.schedule(pairs, reminders.ReminderConfig(days_before=0, template="{name} on {date}")) == 1

    df = pd.read_excel(tmp_path / "r.xlsx")
    assert len(df) == 2
    assert list(df["send_at"]) == ["2026-10-20T12:00:00", "2026-10-21T12:00:00"]
    assert df.loc[1, "message"] == "Asha on 21/10/2026"


def test_schedule_nothing_writes_nothing(tmp_path):
    service = reminders.ReminderService(path=tmp_path / "r.xlsx")
    assert service.schedule([], reminders.ReminderConfig()) == 0
    assert not (tmp_path / "r.xlsx").exists()


def test_schedule_failure_raises_external_error(study, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    service = reminders.ReminderService(path=blocker / "r.xlsx")
    with pytest.raises(ExternalServiceError):
        service.schedule(reminders.upcoming_reminders(study, NOW), reminders.ReminderConfig())


def test_reminder_email_without_smtp_goes_to_outbox(study, tmp_path):
    subject = study.subjects[1].model_copy(update={"email": "sunil@example.com"})
    ok, info = notify.send_reminder_email(subject, study.appointments[2], "Please call us", outbox_dir=tmp_path)

    assert ok is False
    assert info["error"] == "SMTP_USERNAME or SMTP_PASSWORD missing"
    eml = tmp_path / info["eml_path"].split("/")[-1]
    assert b"Please call us" in eml.read_bytes()


def test_reminder_email_needs_address(study):
    ok, info = notify.send_reminder_email(study.subjects[0], study.appointments[0], "hi")
    assert ok is False
    assert "no email" in info["error"]


def test_dashboard_counts_active_subjects_only(study):
    summary = stats.dashboard_summary(study, NOW)
    assert summary["total_subjects"] == 2
    assert summary["upcoming"] == 2
    assert summary["missed"] == 2
    assert summary["completed"] == 1
    assert [m["month"] for m in summary["monthly_volume"]] == ["2026-08", "2026-09", "2026-10"]
    assert summary["monthly_volume"][-1]["label"] == "Oct 2026"


def test_send_email_outbox_keeps_recipients_and_html(tmp_path):
    ok, info = notify.send_email(
        ["a@example.com", "b@example.com"], "Visit", "plain body", html_body="<p>html body</p>", outbox_dir=tmp_path
    )

    assert ok is False
    raw = (tmp_path / info["eml_path"].split("/")[-1]).read_bytes()
    assert b"a@example.com, b@example.com" in raw
    assert b"plain body" in raw and b"html body" in raw


def test_send_email_smtp_failure_falls_back_to_outbox(tmp_path, monkeypatch):
    def refuse(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(config, "SMTP_USERNAME", "study@example.com")
    monkeypatch.setattr(config, "SMTP_PASSWORD", "abcd efgh")
    monkeypatch.setattr(notify.smtplib, "SMTP", refuse)
    monkeypatch.setattr(notify.smtplib, "SMTP_SSL", refuse)

    ok, info = notify.send_email("a@example.com", "Visit", "body", outbox_dir=tmp_path)

    assert ok is False
    assert info["error"].startswith("TLS failed: OSError: connection refused; SSL failed")
    assert info["eml_path"].endswith(".eml")
