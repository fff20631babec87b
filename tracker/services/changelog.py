"""Append-only change log.

Entries are never edited or removed; ``append`` always returns a new snapshot
whose log is the old log plus the new entries.  Display order is derived from
timestamps at read time because bulk operations may append several entries
with coincident timestamps.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from ..schema import ChangeLogEntry, ChangeType, Snapshot, Subject

_TRACKED_FIELDS = ("name", "email", "phone", "alt_phone", "insertion_date", "notes")


def make_entry(
    change_type: ChangeType,
    subject_id: str,
    subject_name: str,
    details: str,
    comment: str,
    *,
    now: datetime,
) -> ChangeLogEntry:
    return ChangeLogEntry(
        timestamp=now,
        subject_id=subject_id,
        subject_name=subject_name,
        change_type=change_type,
        details=details,
        comment=comment,
    )


def append(snapshot: Snapshot, entries: Iterable[ChangeLogEntry]) -> Snapshot:
    entries = list(entries)
    if not entries:
        return snapshot
    return snapshot.model_copy(update={"change_log": [*snapshot.change_log, *entries]})


def list_entries(
    entries: Iterable[ChangeLogEntry],
    change_type: Optional[ChangeType] = None,
    subject_id: Optional[str] = None,
) -> List[ChangeLogEntry]:
    """Return entries newest first; ties keep the later-appended entry first."""
    indexed = [
        (pos, e)
        for pos, e in enumerate(entries)
        if (change_type is None or e.change_type == change_type)
        and (subject_id is None or e.subject_id == subject_id)
    ]
    indexed.sort(key=lambda p: (p[1].timestamp, p[0]), reverse=True)
    return [e for _, e in indexed]


def exited_entries(entries: Iterable[ChangeLogEntry]) -> List[ChangeLogEntry]:
    return list_entries(entries, change_type=ChangeType.DELETE)


def _show(value) -> str:
    if value is None:
        return "''"
    if isinstance(value, datetime):
        return f"'{value.isoformat(timespec='minutes')}'"
    return f"'{value}'"


def describe_changes(before: Subject, after: Subject) -> str:
    parts = []
    for name in _TRACKED_FIELDS:
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            parts.append(f"{name}: {_show(old)} -> {_show(new)}")
    return "; ".join(parts) if parts else "No field changes"
