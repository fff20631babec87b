"""Subject directory: lookups plus the create/update operations."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .. import config
from ..errors import DuplicateSubjectId, MissingRequiredComment, MissingRequiredField, SubjectNotFound
from ..schema import ChangeType, Outcome, Snapshot, Subject, SubjectUpdate
from . import changelog

logger = logging.getLogger(__name__)


def normalize_subject_id(raw: Optional[str]) -> str:
    # Ids are trimmed but case is preserved: "a001" and "A001" are distinct.
    return (raw or "").strip()


def find_subject(snapshot: Snapshot, subject_id: str) -> Optional[Subject]:
    for s in snapshot.subjects:
        if s.id == subject_id:
            return s
    return None


def get_subject(snapshot: Snapshot, subject_id: str) -> Subject:
    subject = find_subject(snapshot, subject_id)
    if subject is None:
        raise SubjectNotFound(f"Subject '{subject_id}' is not in the active directory.")
    return subject


def display_name(snapshot: Snapshot, subject_id: str) -> str:
    subject = find_subject(snapshot, subject_id)
    return subject.name if subject else config.UNKNOWN_SUBJECT_NAME


def list_subjects(snapshot: Snapshot) -> List[Subject]:
    return list(snapshot.subjects)


def active_ids(snapshot: Snapshot) -> set:
    return {s.id for s in snapshot.subjects}


def replace_subject(snapshot: Snapshot, subject: Subject) -> Snapshot:
    subjects = [subject if s.id == subject.id else s for s in snapshot.subjects]
    return snapshot.model_copy(update={"subjects": subjects})


def remove_subject(snapshot: Snapshot, subject_id: str) -> Snapshot:
    """Drop a subject from the active set; its appointments and log entries stay."""
    subjects = [s for s in snapshot.subjects if s.id != subject_id]
    return snapshot.model_copy(update={"subjects": subjects})


def _require_comment(comment: Optional[str]) -> str:
    if not (comment or "").strip():
        raise MissingRequiredComment("Please provide a comment.")
    return comment.strip()


def create_subject(snapshot: Snapshot, subject: Subject, comment: str, *, now: datetime) -> Outcome:
    comment = _require_comment(comment)
    subject_id = normalize_subject_id(subject.id)
    name = (subject.name or "").strip()
    if not subject_id or not name:
        raise MissingRequiredField("Subject id and name are required.")
    if find_subject(snapshot, subject_id) is not None:
        raise DuplicateSubjectId(f"Subject ID '{subject_id}' already exists.")

    created = subject.model_copy(update={
        "id": subject_id,
        "name": name,
        "insertion_date": subject.insertion_date or now,
        "notes": subject.notes or config.MANUAL_SUBJECT_NOTE,
    })
    entry = changelog.make_entry(
        ChangeType.CREATE, created.id, created.name, "Created new subject entry", comment, now=now
    )
    nxt = snapshot.model_copy(update={"subjects": [*snapshot.subjects, created]})
    logger.info("Created subject %s", created.id)
    return Outcome(changelog.append(nxt, [entry]), [entry], created)


def update_subject(
    snapshot: Snapshot,
    subject_id: str,
    changes: SubjectUpdate,
    comment: str,
    *,
    now: datetime,
) -> Outcome:
    comment = _require_comment(comment)
    existing = get_subject(snapshot, subject_id)
    fields = changes.model_dump(exclude_unset=True)
    if "name" in fields and not (fields["name"] or "").strip():
        raise MissingRequiredField("Subject name cannot be blank.")

    updated = existing.model_copy(update=fields)
    entry = changelog.make_entry(
        ChangeType.UPDATE,
        updated.id,
        updated.name,
        f"Updated subject details: {changelog.describe_changes(existing, updated)}",
        comment,
        now=now,
    )
    nxt = replace_subject(snapshot, updated)
    return Outcome(changelog.append(nxt, [entry]), [entry], updated)
