"""Persistence collaborator: whole-collection load/replace keyed by name."""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .. import config
from ..errors import ExternalServiceError
from ..schema import Appointment, ChangeLogEntry, Snapshot, Subject

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class SnapshotStore(Protocol):
    def load(self, key: str) -> Optional[Any]: ...

    def save(self, key: str, data: Any) -> None: ...


@dataclass
class JsonFileStore:
    """One JSON document per key under ``root``; saves replace the file atomically."""

    root: Path = config.DATA_DIR

    def _path(self, key: str) -> Path:
        return Path(self.root) / f"{key}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ExternalServiceError(f"Could not read {path}: {e}") from e

    def save(self, key: str, data: Any) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise ExternalServiceError(f"Could not write {path}: {e}") from e


@dataclass
class MemoryStore:
    data: Dict[str, Any] = field(default_factory=dict)

    def load(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self.data.get(key))

    def save(self, key: str, data: Any) -> None:
        self.data[key] = copy.deepcopy(data)


def _load_models(store: SnapshotStore, key: str, model: Type[M]) -> List[M]:
    try:
        raw = store.load(key)
        if raw is None:
            return []
        return [model.model_validate(item) for item in raw]
    except (ExternalServiceError, SchemaError, TypeError) as e:
        logger.error("Could not load %s (%s); starting with an empty collection", key, e, exc_info=True)
        return []


def load_snapshot(store: SnapshotStore) -> Snapshot:
    return Snapshot(
        subjects=_load_models(store, config.SUBJECTS_KEY, Subject),
        appointments=_load_models(store, config.APPOINTMENTS_KEY, Appointment),
        change_log=_load_models(store, config.CHANGELOG_KEY, ChangeLogEntry),
    )


def save_snapshot(store: SnapshotStore, snapshot: Snapshot) -> bool:
    """Replace every stored collection. Failures are logged, never raised."""
    try:
        store.save(config.SUBJECTS_KEY, [s.model_dump(mode="json") for s in snapshot.subjects])
        store.save(config.APPOINTMENTS_KEY, [a.model_dump(mode="json") for a in snapshot.appointments])
        store.save(config.CHANGELOG_KEY, [e.model_dump(mode="json") for e in snapshot.change_log])
        return True
    except Exception:
        logger.warning("Snapshot save failed; in-memory state is kept", exc_info=True)
        return False
