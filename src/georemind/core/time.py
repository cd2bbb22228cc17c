"""
Time parsing and timezone normalization.

GeoRemind stores timestamps as timezone-aware UTC datetimes. Suggestion labels
("usually around 08:30 on Monday") are rendered in the configured app timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def ensure_tz(dt: datetime, timezone: str) -> datetime:
    """Ensure `dt` has tzinfo; attach `timezone` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(timezone))
    return dt


@dataclass(frozen=True)
class TimeOfWeek:
    """Day-of-week and time-of-day of a timestamp in a given timezone."""

    day: int
    day_name: str
    hour: int
    minute: int

    @property
    def hhmm(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def time_of_week(dt: datetime, timezone: str) -> TimeOfWeek:
    """Label `dt` with weekday (Monday=0) and hour/minute in `timezone`.

    Naive datetimes are read as UTC, the storage convention.
    """
    local = ensure_tz(dt, "UTC").astimezone(ZoneInfo(timezone))
    day = local.weekday()
    return TimeOfWeek(day=day, day_name=DAY_NAMES[day], hour=local.hour, minute=local.minute)


def minutes_apart(a: TimeOfWeek, b: TimeOfWeek) -> int:
    """Circular time-of-day difference in minutes (23:50 and 00:10 are 20 apart)."""
    diff = abs((a.hour * 60 + a.minute) - (b.hour * 60 + b.minute))
    return min(diff, MINUTES_PER_DAY - diff)


def is_near_time(a: TimeOfWeek, b: TimeOfWeek, *, window_minutes: int = 30) -> bool:
    return minutes_apart(a, b) <= window_minutes
