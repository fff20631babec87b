"""Bulk reconciliation of externally tokenized rows into the directory and store.

Rows are staged in order: unknown subject ids create a subject, known ids merge
non-empty fields, and every row yields exactly one new appointment.  Nothing is
committed until the whole batch has been staged, and the change log receives at
most two summary entries per batch.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List

from .. import config
from ..schema import (
    Appointment,
    AppointmentStatus,
    BulkRow,
    ChangeType,
    ImportSummary,
    Outcome,
    Snapshot,
    Subject,
)
from . import changelog
from .appointments import add_appointments
from .subjects import normalize_subject_id

logger = logging.getLogger(__name__)


def _merge(existing: Subject, row: BulkRow) -> Subject:
    return existing.model_copy(update={
        "name": row.name.strip() or existing.name,
        "phone": row.phone.strip() or existing.phone,
        "alt_phone": row.alt_phone.strip() or existing.alt_phone,
        "insertion_date": row.insertion_date or existing.insertion_date,
    })


def _new_subject(subject_id: str, row: BulkRow, now: datetime) -> Subject:
    return Subject(
        id=subject_id,
        name=row.name.strip() or f"Subject {subject_id}",
        phone=row.phone.strip() or None,
        alt_phone=row.alt_phone.strip() or None,
        insertion_date=row.insertion_date or now,
        notes=config.BULK_SUBJECT_NOTE,
    )


def _appointment_for(subject_id: str, row: BulkRow, now: datetime) -> Appointment:
    is_past = row.appointment_date < now
    return Appointment(
        subject_id=subject_id,
        date=row.appointment_date,
        status=AppointmentStatus.MISSED if is_past else AppointmentStatus.SCHEDULED,
        follow_up_reason=config.BULK_PAST_REASON if is_past else None,
        notes=row.remark.strip() or None,
    )


def import_bulk(snapshot: Snapshot, rows: Iterable[BulkRow], *, now: datetime) -> Outcome:
    existing: Dict[str, Subject] = {s.id: s for s in snapshot.subjects}
    created: Dict[str, Subject] = {}
    updated: Dict[str, Subject] = {}
    new_appointments: List[Appointment] = []
    skipped = 0

    for row in rows:
        subject_id = normalize_subject_id(row.subject_id)
        if not subject_id or row.appointment_date is None:
            skipped += 1
            continue

        if subject_id in created:
            created[subject_id] = _merge(created[subject_id], row)
        elif subject_id in existing:
            base = updated.get(subject_id, existing[subject_id])
            updated[subject_id] = _merge(base, row)
        else:
            created[subject_id] = _new_subject(subject_id, row, now)

        new_appointments.append(_appointment_for(subject_id, row, now))

    # no-op merges are not updates
    updated = {k: v for k, v in updated.items() if v != existing[k]}

    summary = ImportSummary(
        subjects_created=len(created),
        subjects_updated=len(updated),
        appointments_created=len(new_appointments),
        rows_skipped=skipped,
    )

    subjects = [updated.get(s.id, s) for s in snapshot.subjects] + list(created.values())
    nxt = snapshot.model_copy(update={"subjects": subjects})
    nxt = add_appointments(nxt, new_appointments)

    entries = []
    if created or updated:
        entries.append(changelog.make_entry(
            ChangeType.UPDATE,
            config.BATCH_SUBJECT_ID,
            "Bulk Ops",
            f"Added {len(created)} new subjects and updated {len(updated)}.",
            config.BULK_COMMENT,
            now=now,
        ))
    if new_appointments:
        entries.append(changelog.make_entry(
            ChangeType.CREATE,
            config.BATCH_SUBJECT_ID,
            "Bulk Appts",
            f"Bulk scheduled {len(new_appointments)} appointments.",
            config.BULK_COMMENT,
            now=now,
        ))

    logger.info(
        "Bulk import: %d created, %d updated, %d appointments, %d rows skipped",
        summary.subjects_created, summary.subjects_updated, summary.appointments_created, skipped,
    )
    return Outcome(changelog.append(nxt, entries), entries, summary)
