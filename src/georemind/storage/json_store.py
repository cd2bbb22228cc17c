from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from georemind.core.errors import StorageUnavailable
from georemind.domain.models import HistoryRecord, Reminder, SavedLocation, Trigger
from georemind.storage.memory import COLLECTIONS, InMemoryStore

"""
Single-file JSON storage backend.

The whole dataset lives in one JSON document:
`{"reminders": [...], "locations": [...], "triggers": [...], "history": [...]}`.
Every mutation rewrites the file via a temporary file + atomic replace, so a crash
never leaves a partial document behind.
"""

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, TypeAdapter] = {
    "reminders": TypeAdapter(list[Reminder]),
    "locations": TypeAdapter(list[SavedLocation]),
    "triggers": TypeAdapter(list[Trigger]),
    "history": TypeAdapter(list[HistoryRecord]),
}


class JsonFileStore(InMemoryStore):
    """An `InMemoryStore` mirrored to a JSON file on disk."""

    def __init__(self, path: Path):
        super().__init__()
        self._path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("expected a JSON object at the root")
            for name in COLLECTIONS:
                rows = _ADAPTERS[name].validate_python(raw.get(name) or [])
                self._rows[name] = {r.id: r for r in rows}
        except (OSError, ValueError, ValidationError) as e:
            raise StorageUnavailable(f"Cannot read store {self._path}: {e}") from e
        logger.info(
            "Loaded store %s (%s)",
            self._path,
            ", ".join(f"{name}={len(self._rows[name])}" for name in COLLECTIONS),
        )

    def _changed(self) -> None:
        payload = {
            name: [row.model_dump(mode="json") for row in self._rows[name].values()] for name in COLLECTIONS
        }
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot write store {self._path}: {e}") from e
