"""
Smart suggestions.

Suggestions are derived on every call from the user's current history and saved
locations; nothing here is cached or persisted.

- `build_suggestions`: "you often park near X" (navigation) and "you frequently visit
  this area" (reminder), top-N by frequency.
- `time_based_suggestions`: one prompt per history record, labelled with the weekday
  and time of day it was first observed.
- `suggestions_for_now`: time-based prompts whose time of day is close to `now`.
- `nearest_entity` / `nearest_reminder`: closest geo-entity to a live position.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Iterator

from georemind.core.geo import GeoPoint, is_within, nearest
from georemind.core.time import ensure_tz, is_near_time, time_of_week, utcnow
from georemind.domain.models import (
    HistoryKind,
    HistoryRecord,
    NearestMatch,
    SavedLocation,
    Suggestion,
    SuggestionLocation,
    TimeLabel,
)
from georemind.history.aggregator import aggregate_frequent_clusters
from georemind.storage.base import GeoStore

logger = logging.getLogger(__name__)

FALLBACK_NAME = "Frequent Location"
FALLBACK_PLACE_TYPE = "unknown"

_VERBS = {"parked": "parked", "driving": "driven"}


def _last_seen(s: Suggestion) -> float:
    # Naive timestamps are UTC, as everywhere in storage.
    return ensure_tz(s.last_seen, "UTC").timestamp()


def rank(suggestions: Iterable[Suggestion], *, limit: int) -> list[Suggestion]:
    """Top `limit` suggestions by frequency (desc), most recent first on ties."""
    ordered = sorted(suggestions, key=_last_seen, reverse=True)
    ordered.sort(key=lambda s: s.frequency, reverse=True)
    return ordered[: max(0, int(limit))]


def _dedupe(suggestions: list[Suggestion]) -> list[Suggestion]:
    """Keep the best-ranked suggestion per (type, referenced coordinates)."""
    best: dict[tuple[str, tuple[float, float]], Suggestion] = {}
    for s in suggestions:
        key = (s.type, tuple(s.location.coordinates))
        cur = best.get(key)
        if cur is None or (s.frequency, _last_seen(s)) > (cur.frequency, _last_seen(cur)):
            best[key] = s
    return list(best.values())


def _containing_location(point: GeoPoint, locations: list[SavedLocation]) -> SavedLocation | None:
    for loc in locations:
        if is_within(point, loc.location.point, loc.radius):
            return loc
    return None


def build_suggestions(
    store: GeoStore,
    user_id: str,
    *,
    kind: HistoryKind = "parked",
    min_cluster_frequency: int = 3,
    cluster_radius_m: float = 100,
    limit: int = 5,
) -> Iterator[Suggestion]:
    """Yield navigation/reminder suggestions for a user, best first.

    Each history record is tested against the user's saved locations (each with its
    own radius) and, independently, against the frequent clusters (with
    `cluster_radius_m`). The first match of each kind produces one suggestion.
    """
    records = store.list_history(user_id, kind)
    if not records:
        return
    locations = store.list_locations(user_id)
    clusters = aggregate_frequent_clusters(store, user_id, kind=kind, min_frequency=min_cluster_frequency)

    found: list[Suggestion] = []
    for rec in records:
        loc = _containing_location(rec.point, locations)
        if loc is not None:
            found.append(
                Suggestion(
                    type="navigation",
                    location=SuggestionLocation(
                        name=loc.name,
                        coordinates=loc.location.coordinates,
                        place_type=loc.place_type,
                        radius=loc.radius,
                    ),
                    message=f"You often park near {loc.name}. Would you like to navigate there?",
                    frequency=rec.frequency,
                    last_seen=rec.updated_at,
                )
            )

        for cluster in clusters:
            if is_within(rec.point, cluster.location.point, cluster_radius_m):
                found.append(
                    Suggestion(
                        type="reminder",
                        location=SuggestionLocation(
                            name=FALLBACK_NAME,
                            coordinates=cluster.location.coordinates,
                            radius=cluster_radius_m,
                        ),
                        message="You frequently visit this area. Would you like to set a reminder?",
                        frequency=cluster.total_frequency,
                        last_seen=rec.updated_at,
                    )
                )
                break

    yield from rank(_dedupe(found), limit=limit)


def _time_based(
    rec: HistoryRecord,
    locations: list[SavedLocation],
    *,
    timezone: str,
    default_radius_m: float,
) -> tuple[Suggestion, SavedLocation | None]:
    label = time_of_week(rec.created_at, timezone)
    loc = _containing_location(rec.point, locations)
    verb = _VERBS.get(rec.kind, "been")
    suggestion = Suggestion(
        type="time-based",
        location=SuggestionLocation(
            name=loc.name if loc else FALLBACK_NAME,
            coordinates=rec.location.coordinates,
            place_type=loc.place_type if loc else FALLBACK_PLACE_TYPE,
            radius=loc.radius if loc else default_radius_m,
        ),
        message=f"You've {verb} here {rec.frequency} times, typically around {label.hhmm} on {label.day_name}",
        frequency=rec.frequency,
        last_seen=rec.updated_at,
        time_label=TimeLabel(day=label.day, day_name=label.day_name, hour=label.hour, minute=label.minute),
    )
    return suggestion, loc


def time_based_suggestions(
    store: GeoStore,
    user_id: str,
    *,
    kind: HistoryKind = "parked",
    timezone: str = "UTC",
    default_radius_m: float = 100,
    limit: int = 5,
) -> Iterator[Suggestion]:
    """Yield "you usually go here around this time" prompts, most frequent first."""
    records = store.list_history(user_id, kind)
    if not records:
        return
    locations = store.list_locations(user_id)
    found = [
        _time_based(rec, locations, timezone=timezone, default_radius_m=default_radius_m)[0] for rec in records
    ]
    yield from rank(found, limit=limit)


def suggestions_for_now(
    store: GeoStore,
    user_id: str,
    *,
    now: datetime | None = None,
    kind: HistoryKind = "parked",
    timezone: str = "UTC",
    window_minutes: int = 30,
    default_radius_m: float = 100,
    limit: int = 3,
) -> Iterator[Suggestion]:
    """Yield time-based prompts for places usually visited within `window_minutes` of `now`."""
    records = store.list_history(user_id, kind)
    if not records:
        return
    current = time_of_week(now or utcnow(), timezone)
    locations = store.list_locations(user_id)

    found: list[Suggestion] = []
    for rec in records:
        label = time_of_week(rec.created_at, timezone)
        if not is_near_time(current, label, window_minutes=window_minutes):
            continue
        suggestion, loc = _time_based(rec, locations, timezone=timezone, default_radius_m=default_radius_m)
        name = loc.name if loc else "this location"
        found.append(
            suggestion.model_copy(
                update={"message": f"You typically visit {name} at {label.hhmm}. Would you like to go there now?"}
            )
        )
    yield from rank(found, limit=limit)


def _entity_point(entity: Any) -> GeoPoint:
    return entity.location.point


def nearest_entity(
    user_id: str,
    current_pos: GeoPoint,
    candidates: Iterable[Any],
) -> NearestMatch | None:
    """Closest candidate owned by `user_id`, or None when there is no candidate.

    Ties keep the first candidate in input order; candidates without a usable
    location are skipped.
    """
    owned = (c for c in candidates if str(getattr(c, "user_id", user_id)) == str(user_id))
    best = nearest(current_pos, owned, get_point=_entity_point)
    if best is None:
        return None
    entity, d = best
    return NearestMatch(entity=entity, distance_m=d)


def nearest_reminder(
    store: GeoStore,
    user_id: str,
    current_pos: GeoPoint,
    *,
    include_completed: bool = False,
) -> NearestMatch | None:
    reminders = [r for r in store.list_reminders(user_id) if include_completed or not r.is_completed]
    match = nearest_entity(user_id, current_pos, reminders)
    if match is not None:
        logger.debug("Nearest reminder for %s is %s at %.1fm", user_id, match.entity.id, match.distance_m)
    return match

