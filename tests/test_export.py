from datetime import date, timedelta

import pandas as pd
import pytest

from tracker.errors import ExternalServiceError, NothingToExport
from tracker.schema import AppointmentStatus, ChangeType, ExitReason, Snapshot, SubjectExit
from tracker.services import export, lifecycle

from .conftest import NOW, make_appt, make_subject


@pytest.fixture
def study():
    return Snapshot(
        subjects=[make_subject("A001", "Asha"), make_subject("S002", "Sunil"), make_subject("M003", "Mohan")],
        appointments=[
            make_appt("A001", NOW + timedelta(days=3), notes="Visit 2"),
            make_appt("S002", NOW + timedelta(days=40)),
            make_appt("M003", NOW - timedelta(days=2), status=AppointmentStatus.MISSED),
            make_appt("X999", NOW + timedelta(days=5)),
        ],
    )


def test_upcoming_filter_drops_past_and_non_scheduled(study):
    appts = export.filter_appointments(list(study.appointments), export.ExportFilter(), NOW)
    assert sorted(a.subject_id for a in appts) == ["A001", "S002", "X999"]


def test_month_range_and_site_filter(study):
    flt = export.ExportFilter(mode="ALL", start_month="2026-10", end_month="2026-10", site="AIIMS")
    appts = export.filter_appointments(list(study.appointments), flt, NOW)
    assert [a.subject_id for a in appts] == ["A001"]


def test_invalid_month_rejected():
    with pytest.raises(ValueError):
        export.ExportFilter(start_month="2026-13")


def test_calendar_filename():
    assert export.calendar_filename(export.ExportFilter()) == "ProTrack_UPCOMING_ALL_all.xlsx"
    flt = export.ExportFilter(mode="ALL", site="SJH", start_month="2026-10", end_month="2026-12")
    assert export.calendar_filename(flt) == "ProTrack_ALL_SJH_2026-10_to_2026-12.xlsx"


def test_export_calendar_writes_rows(study, tmp_path):
    path = export.export_calendar(study, export.ExportFilter(site="ALL"), now=NOW, out_dir=tmp_path)

    df = pd.read_excel(path, sheet_name="Calendar")
    assert list(df["Subject ID"]) == ["A001", "X999", "S002"]
    assert list(df["Name"]) == ["Asha", "Unknown", "Sunil"]
    assert df.loc[0, "Remark"] == "Visit 2"
    assert df.loc[0, "Appointment Date"] == "2026-10-22"


def test_empty_selection_raises(study, tmp_path):
    flt = export.ExportFilter(site="MEERUT")
    with pytest.raises(NothingToExport):
        export.export_calendar(study, flt, now=NOW, out_dir=tmp_path)
    assert not list(tmp_path.iterdir())


def test_exited_subjects_report(study, tmp_path):
    with pytest.raises(NothingToExport):
        export.export_exited_subjects(study, now=NOW, out_dir=tmp_path)

    out = lifecycle.exit_subject(
        study, "S002", SubjectExit(reason=ExitReason.EXPULSION, exit_date=date(2026, 10, 19)), now=NOW
    )
    path = export.export_exited_subjects(out.snapshot, now=NOW, out_dir=tmp_path)

    assert path.name == "ProTrack_Exited_Subjects_2026-10-19.xlsx"
    df = pd.read_excel(path)
    assert list(df["Subject ID"]) == ["S002"]
    assert df.loc[0, "Exit Reason / Details"] == "Exit Study: EXPULSION on 2026-10-19"


def test_change_log_pdf(study, tmp_path):
    out = lifecycle.run_auto_miss(study.model_copy(update={
        "appointments": [make_appt("A001", NOW - timedelta(hours=1))],
    }), now=NOW)
    path = export.export_change_log_pdf(out.snapshot, now=NOW, out_dir=tmp_path)
    assert path.read_bytes().startswith(b"%PDF")

    with pytest.raises(NothingToExport):
        export.export_change_log_pdf(out.snapshot, now=NOW, change_type=ChangeType.DELETE, out_dir=tmp_path)


def test_writer_failure_becomes_external_error(study, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    with pytest.raises(ExternalServiceError):
        export.export_calendar(study, export.ExportFilter(), now=NOW, out_dir=blocker)
