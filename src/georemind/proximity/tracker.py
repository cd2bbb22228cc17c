"""
Live geofence state tracking.

Turns snapshot evaluations ("is the user inside this radius right now?") into an
edge-triggered event stream per (user, entity):

    OUTSIDE -> INSIDE   entered
    INSIDE  -> OUTSIDE  exited
    INSIDE  -> INSIDE   within (only when `emit_within` is enabled)
    OUTSIDE -> OUTSIDE  nothing

Only INSIDE keys are stored; a missing key means OUTSIDE. Each key maps to the
monotonic time it was last seen inside, which drives TTL eviction: a key not
refreshed for `ttl_seconds` is dropped, so the next inside evaluation emits
`entered` again.

State is process-wide and in-memory. The service creates one tracker at startup;
a restart starts every key from OUTSIDE.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from georemind.core.errors import InvalidCoordinate, StorageUnavailable
from georemind.core.geo import GeoPoint, check_radius, distance_m
from georemind.domain.models import PointGeometry, ProximityEvent, ProximityStatus

logger = logging.getLogger(__name__)

StateKey = tuple[str, str]

_ENTITY_TYPES = {
    "Reminder": "reminder",
    "SavedLocation": "location",
    "Trigger": "trigger",
}


@dataclass(frozen=True)
class _Fence:
    entity: Any
    entity_id: str
    entity_type: str
    center: GeoPoint
    radius_m: float


def _field(entity: Any, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def _as_point(location: Any) -> GeoPoint:
    if isinstance(location, GeoPoint):
        return location
    if isinstance(location, PointGeometry):
        return location.point
    if isinstance(location, Mapping):
        return GeoPoint.from_coordinates(location.get("coordinates"))
    raise InvalidCoordinate(f"Unsupported location value: {type(location).__name__}")


def _fence_of(entity: Any, user_id: str) -> _Fence | None:
    """Extract a geofence from an entity, or None if it cannot take part in the pass."""
    try:
        entity_id = _field(entity, "id")
        location = _field(entity, "location")
        radius = _field(entity, "radius")
        if entity_id is None or entity_id == "" or location is None or radius is None:
            logger.debug("Skipping entity without id/location/radius: %r", entity)
            return None
        owner = _field(entity, "user_id")
        if owner is not None and str(owner) != str(user_id):
            logger.debug("Skipping entity %s owned by another user", entity_id)
            return None
        entity_type = _field(entity, "entity_type") or _ENTITY_TYPES.get(type(entity).__name__, "entity")
        return _Fence(
            entity=entity,
            entity_id=str(entity_id),
            entity_type=str(entity_type),
            center=_as_point(location),
            radius_m=check_radius(radius),
        )
    except (KeyError, TypeError, ValueError) as e:
        # InvalidCoordinate / InvalidRadius are ValueErrors.
        logger.debug("Skipping malformed entity %r: %s", entity, e)
        return None


class ProximityStateTracker:
    """Per-(user, entity) geofence membership with transition events."""

    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        emit_within: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds is not None and float(ttl_seconds) <= 0:
            raise ValueError("ttl_seconds must be > 0 (or None to disable eviction)")
        self._ttl_seconds = float(ttl_seconds) if ttl_seconds is not None else None
        self._emit_within = bool(emit_within)
        self._clock = clock
        self._lock = threading.Lock()
        self._inside: dict[StateKey, float] = {}
        self._last_sweep = clock()

    @property
    def emit_within(self) -> bool:
        return self._emit_within

    def __len__(self) -> int:
        with self._lock:
            return len(self._inside)

    def _expired(self, seen_at: float, now: float) -> bool:
        return self._ttl_seconds is not None and now - seen_at > self._ttl_seconds

    def _sweep_locked(self, now: float) -> int:
        stale = [k for k, seen_at in self._inside.items() if self._expired(seen_at, now)]
        for k in stale:
            del self._inside[k]
        self._last_sweep = now
        return len(stale)

    def evict_expired(self) -> int:
        """Drop every key past its TTL; returns how many were dropped."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def is_inside(self, user_id: str, entity_id: str) -> bool:
        key = (str(user_id), str(entity_id))
        with self._lock:
            seen_at = self._inside.get(key)
            return seen_at is not None and not self._expired(seen_at, self._clock())

    def forget(self, user_id: str, entity_id: str | None = None) -> None:
        """Drop one key, or every key of a user when `entity_id` is None."""
        uid = str(user_id)
        with self._lock:
            if entity_id is not None:
                self._inside.pop((uid, str(entity_id)), None)
                return
            for k in [k for k in self._inside if k[0] == uid]:
                del self._inside[k]

    def reset(self) -> None:
        with self._lock:
            self._inside.clear()

    def _transition(self, key: StateKey, inside_now: bool) -> ProximityStatus | None:
        """Atomically apply one evaluation to `key` and return the event to emit."""
        with self._lock:
            now = self._clock()
            seen_at = self._inside.get(key)
            was_inside = seen_at is not None and not self._expired(seen_at, now)

            if inside_now:
                self._inside[key] = now
                if not was_inside:
                    return "entered"
                return "within" if self._emit_within else None

            if seen_at is not None:
                del self._inside[key]
            return "exited" if was_inside else None

    def evaluate(self, user_id: str, position: GeoPoint, entities: Iterable[Any]) -> list[ProximityEvent]:
        """Run one evaluation pass over a user's geo-tagged entities.

        `position` is validated up front (InvalidCoordinate propagates). Individual
        entities that lack an id, location or radius, carry invalid values, or belong
        to another user are skipped. Events come back in input order.
        """
        if not isinstance(position, GeoPoint):
            position = _as_point(position)
        uid = str(user_id)

        if self._ttl_seconds is not None:
            with self._lock:
                now = self._clock()
                if now - self._last_sweep > self._ttl_seconds:
                    dropped = self._sweep_locked(now)
                    if dropped:
                        logger.debug("Evicted %d expired proximity keys", dropped)

        events: list[ProximityEvent] = []
        for entity in entities:
            fence = _fence_of(entity, uid)
            if fence is None:
                continue
            d = distance_m(position, fence.center)
            status = self._transition((uid, fence.entity_id), d <= fence.radius_m)
            if status is None:
                continue
            events.append(
                ProximityEvent(
                    user_id=uid,
                    entity_id=fence.entity_id,
                    entity_type=fence.entity_type,
                    status=status,
                    distance_m=d,
                )
            )
        return events

    def evaluate_from(
        self,
        user_id: str,
        position: GeoPoint,
        fetch: Callable[[], Iterable[Any]],
    ) -> list[ProximityEvent]:
        """Like `evaluate`, reading the entity collection through `fetch()`.

        A failing `fetch` is reported as `StorageUnavailable`.
        """
        if not isinstance(position, GeoPoint):
            position = _as_point(position)
        try:
            entities = list(fetch())
        except StorageUnavailable:
            raise
        except Exception as e:
            raise StorageUnavailable(f"Cannot load geo-entities for user {user_id}: {e}") from e
        return self.evaluate(user_id, position, entities)
