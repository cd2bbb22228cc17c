"""
Parking / driving history aggregation.

GPS samples of "the same place" are never bit-identical, so observations are matched
to existing history rows by proximity (`match_radius_m`) instead of equality. A match
increments the row's frequency in place; otherwise a new row is created. Per user and
kind this keeps rows at least `match_radius_m` apart; updates for one (user, kind)
are serialised with a per-key lock.

Matching policies:
- `first`: first row within the radius in stored order wins (the row order of the
  storage backend decides when several rows qualify).
- `nearest`: the closest row within the radius wins; ties keep stored order.
"""

from __future__ import annotations

import logging
import threading
from typing import Literal

from georemind.core.errors import InvalidCoordinate
from georemind.core.geo import GeoPoint, check_radius, distance_m
from georemind.core.time import ensure_tz, utcnow
from georemind.domain.models import FrequentCluster, HistoryKind, HistoryRecord, PointGeometry
from georemind.storage.base import GeoStore

logger = logging.getLogger(__name__)

MatchPolicy = Literal["first", "nearest"]

_locks: dict[tuple[str, str], threading.Lock] = {}
_locks_guard = threading.Lock()


def _history_lock(user_id: str, kind: str) -> threading.Lock:
    """One lock per (user, kind): read-match-save of history rows is serialised per key."""
    key = (str(user_id), str(kind))
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def find_match(
    records: list[HistoryRecord],
    point: GeoPoint,
    *,
    match_radius_m: float,
    policy: MatchPolicy = "first",
) -> HistoryRecord | None:
    """Return the existing record `point` folds into, or None."""
    radius = check_radius(match_radius_m)
    best: tuple[HistoryRecord, float] | None = None
    for rec in records:
        try:
            d = distance_m(rec.point, point)
        except InvalidCoordinate:
            continue
        if d > radius:
            continue
        if policy == "first":
            return rec
        if best is None or d < best[1]:
            best = (rec, d)
    return best[0] if best else None


def record_observation(
    store: GeoStore,
    user_id: str,
    point: GeoPoint,
    *,
    match_radius_m: float,
    kind: HistoryKind = "parked",
    increment_by: int = 1,
    policy: MatchPolicy = "first",
) -> HistoryRecord:
    """Fold one observation into the user's history and return the touched record.

    Raises:
        InvalidRadius: `match_radius_m` is not > 0.
        ValueError: `increment_by` is < 1 or `policy` is unknown.
        StorageUnavailable: the store failed; no record was changed.
    """
    radius = check_radius(match_radius_m)
    if int(increment_by) < 1:
        raise ValueError(f"increment_by must be >= 1, got {increment_by!r}")
    if policy not in ("first", "nearest"):
        raise ValueError(f"Unknown match policy: {policy!r}")

    with _history_lock(user_id, kind):
        existing = store.list_history(user_id, kind)
        match = find_match(existing, point, match_radius_m=radius, policy=policy)

        if match is not None:
            updated = match.model_copy(
                update={"frequency": match.frequency + int(increment_by), "updated_at": utcnow()}
            )
            store.save_history(updated)
            logger.info(
                "History %s/%s: matched %s within %.0fm, frequency=%d",
                user_id,
                kind,
                updated.id,
                radius,
                updated.frequency,
            )
            return updated

        created = HistoryRecord(
            user_id=user_id,
            kind=kind,
            location=PointGeometry.from_point(point),
            frequency=int(increment_by),
        )
        store.save_history(created)
    logger.info("History %s/%s: new record %s at %s", user_id, kind, created.id, created.location.coordinates)
    return created


def relocate_or_increment(
    store: GeoStore,
    record_id: str,
    point: GeoPoint,
    *,
    match_radius_m: float,
) -> HistoryRecord:
    """Update one record with a fresh observation.

    Within `match_radius_m` of the record the frequency goes up by one; farther away
    the record is moved to `point` with its frequency unchanged. When another record
    of the same user and kind already lies within `match_radius_m` of `point`, the
    moved record is merged into it instead: frequencies are summed, the moved record
    is deleted and the surviving record is returned.

    Raises:
        NotFound: no record with `record_id`.
    """
    radius = check_radius(match_radius_m)
    record = store.get_history(record_id)
    with _history_lock(record.user_id, record.kind):
        # Re-read under the lock; a concurrent call may have merged or deleted it.
        record = store.get_history(record_id)
        now = utcnow()
        if distance_m(record.point, point) <= radius:
            updated = record.model_copy(update={"frequency": record.frequency + 1, "updated_at": now})
            store.save_history(updated)
            return updated

        others = [r for r in store.list_history(record.user_id, record.kind) if r.id != record.id]
        target = find_match(others, point, match_radius_m=radius)
        if target is None:
            updated = record.model_copy(update={"location": PointGeometry.from_point(point), "updated_at": now})
            store.save_history(updated)
            return updated

        merged = target.model_copy(update={"frequency": target.frequency + record.frequency, "updated_at": now})
        store.save_history(merged)
        store.delete_history(record.id)
    logger.info(
        "History %s/%s: merged %s into %s, frequency=%d",
        record.user_id,
        record.kind,
        record.id,
        merged.id,
        merged.frequency,
    )
    return merged


def _recency_key(rec: HistoryRecord) -> float:
    return ensure_tz(rec.updated_at, "UTC").timestamp()


def rank_by_frequency(
    store: GeoStore,
    user_id: str,
    *,
    kind: HistoryKind = "parked",
    limit: int | None = None,
) -> list[HistoryRecord]:
    """Return the user's records by frequency (desc), most recently updated first on ties."""
    records = store.list_history(user_id, kind)
    # Two stable passes: recency first, then frequency.
    records.sort(key=_recency_key, reverse=True)
    records.sort(key=lambda r: r.frequency, reverse=True)
    if limit is not None:
        return records[: max(0, int(limit))]
    return records


def group_by_coordinates(records: list[HistoryRecord]) -> list[FrequentCluster]:
    """Group rows sharing an exact stored coordinate; ordered by total frequency (desc)."""
    totals: dict[tuple[float, float], list[int]] = {}
    for rec in records:
        acc = totals.setdefault(tuple(rec.location.coordinates), [0, 0])
        acc[0] += rec.frequency
        acc[1] += 1
    clusters = [
        FrequentCluster(location=PointGeometry(coordinates=coords), total_frequency=total, count=count)
        for coords, (total, count) in totals.items()
    ]
    clusters.sort(key=lambda c: c.total_frequency, reverse=True)
    return clusters


def aggregate_frequent_clusters(
    store: GeoStore,
    user_id: str,
    *,
    kind: HistoryKind = "parked",
    min_frequency: int = 3,
) -> list[FrequentCluster]:
    """Coordinate groups whose summed frequency is at least `min_frequency`."""
    clusters = group_by_coordinates(store.list_history(user_id, kind))
    return [c for c in clusters if c.total_frequency >= min_frequency]


def history_trends(store: GeoStore, user_id: str, *, kind: HistoryKind = "driving") -> list[FrequentCluster]:
    """All coordinate groups for a user, busiest first."""
    return group_by_coordinates(store.list_history(user_id, kind))
