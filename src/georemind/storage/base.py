"""
Storage collaborator interface.

The geo core never talks to a database directly; it receives an object with this
shape. Implementations raise `StorageUnavailable` on I/O failure and `NotFound`
for unknown ids. Listing methods return rows in stored (insertion) order.
"""

from __future__ import annotations

from typing import Protocol

from georemind.domain.models import HistoryKind, HistoryRecord, Reminder, SavedLocation, Trigger


class GeoStore(Protocol):
    def list_reminders(self, user_id: str) -> list[Reminder]: ...

    def get_reminder(self, reminder_id: str) -> Reminder: ...

    def save_reminder(self, reminder: Reminder) -> Reminder: ...

    def delete_reminder(self, reminder_id: str) -> None: ...

    def list_locations(self, user_id: str) -> list[SavedLocation]: ...

    def get_location(self, location_id: str) -> SavedLocation: ...

    def save_location(self, location: SavedLocation) -> SavedLocation: ...

    def delete_location(self, location_id: str) -> None: ...

    def list_triggers(self, user_id: str) -> list[Trigger]: ...

    def save_trigger(self, trigger: Trigger) -> Trigger: ...

    def list_history(self, user_id: str, kind: HistoryKind) -> list[HistoryRecord]: ...

    def get_history(self, record_id: str) -> HistoryRecord: ...

    def save_history(self, record: HistoryRecord) -> HistoryRecord: ...

    def delete_history(self, record_id: str) -> None: ...
