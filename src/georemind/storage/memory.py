"""
In-process storage backend.

Keeps each collection in an insertion-ordered dict keyed by id. Saving an existing id
replaces the row in place, so listing order stays the order of first insertion.
"""

from __future__ import annotations

import threading
from typing import Any, TypeVar

from pydantic import BaseModel

from georemind.core.errors import NotFound
from georemind.domain.models import HistoryKind, HistoryRecord, Reminder, SavedLocation, Trigger

M = TypeVar("M", bound=BaseModel)

COLLECTIONS = ("reminders", "locations", "triggers", "history")


class InMemoryStore:
    """A thread-safe dict-backed `GeoStore`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rows: dict[str, dict[str, Any]] = {name: {} for name in COLLECTIONS}

    def _list(self, collection: str, user_id: str) -> list[Any]:
        with self._lock:
            return [r.model_copy() for r in self._rows[collection].values() if r.user_id == user_id]

    def _get(self, collection: str, row_id: str, label: str) -> Any:
        with self._lock:
            row = self._rows[collection].get(row_id)
        if row is None:
            raise NotFound(f"{label} not found: {row_id}")
        return row.model_copy()

    def _save(self, collection: str, row: M) -> M:
        with self._lock:
            rows = self._rows[collection]
            previous = rows.get(row.id)
            rows[row.id] = row.model_copy()
            try:
                self._changed()
            except Exception:
                if previous is None:
                    rows.pop(row.id, None)
                else:
                    rows[row.id] = previous
                raise
        return row

    def _delete(self, collection: str, row_id: str, label: str) -> None:
        with self._lock:
            rows = self._rows[collection]
            if row_id not in rows:
                raise NotFound(f"{label} not found: {row_id}")
            # Rebuild on rollback to keep the row at its original position.
            snapshot = dict(rows)
            del rows[row_id]
            try:
                self._changed()
            except Exception:
                self._rows[collection] = snapshot
                raise

    def _changed(self) -> None:
        """Hook called under the lock after every mutation; raising rolls the mutation back."""

    def list_reminders(self, user_id: str) -> list[Reminder]:
        return self._list("reminders", user_id)

    def get_reminder(self, reminder_id: str) -> Reminder:
        return self._get("reminders", reminder_id, "Reminder")

    def save_reminder(self, reminder: Reminder) -> Reminder:
        return self._save("reminders", reminder)

    def delete_reminder(self, reminder_id: str) -> None:
        self._delete("reminders", reminder_id, "Reminder")

    def list_locations(self, user_id: str) -> list[SavedLocation]:
        return self._list("locations", user_id)

    def get_location(self, location_id: str) -> SavedLocation:
        return self._get("locations", location_id, "Location")

    def save_location(self, location: SavedLocation) -> SavedLocation:
        return self._save("locations", location)

    def delete_location(self, location_id: str) -> None:
        self._delete("locations", location_id, "Location")

    def list_triggers(self, user_id: str) -> list[Trigger]:
        return self._list("triggers", user_id)

    def save_trigger(self, trigger: Trigger) -> Trigger:
        return self._save("triggers", trigger)

    def list_history(self, user_id: str, kind: HistoryKind) -> list[HistoryRecord]:
        return [r for r in self._list("history", user_id) if r.kind == kind]

    def get_history(self, record_id: str) -> HistoryRecord:
        return self._get("history", record_id, "History record")

    def save_history(self, record: HistoryRecord) -> HistoryRecord:
        return self._save("history", record)

    def delete_history(self, record_id: str) -> None:
        self._delete("history", record_id, "History record")
