"""
API routes.

Thin handlers over the geo core. The caller identity is an opaque user id in the
`X-User-Id` header (authentication happens upstream).

Endpoints:
- `/api/locations`, `/api/reminders`, `/api/triggers`: saved geo-entities.
- `/api/history/{kind}`: record and inspect parking/driving history.
- POST `/api/proximity/check`: live geofence evaluation -> entered/exited/within events.
- GET `/api/places/nearby`: mapping-service place search.
- `/api/suggestions`, `/api/suggestions/time-based`, `/api/suggestions/now`: smart suggestions.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, TypeVar

from fastapi import APIRouter, Header, HTTPException, Query

from georemind.config.settings import get_settings
from georemind.core.cache import FileCache
from georemind.core.env import resolve_project_path
from georemind.core.errors import (
    GeoRemindError,
    InvalidCoordinate,
    InvalidRadius,
    MapsServiceError,
    NotFound,
    StorageUnavailable,
)
from georemind.core.geo import GeoPoint
from georemind.domain.models import (
    FrequentCluster,
    HistoryKind,
    HistoryRecord,
    NearestMatch,
    ObservationCreate,
    Position,
    ProximityEvent,
    Reminder,
    ReminderCreate,
    SavedLocation,
    SavedLocationCreate,
    Suggestion,
    Trigger,
    TriggerCreate,
)
from georemind.history.aggregator import (
    history_trends,
    rank_by_frequency,
    record_observation,
    relocate_or_increment,
)
from georemind.ingestion.maps_client import MapsClient
from georemind.proximity.tracker import ProximityStateTracker
from georemind.storage.base import GeoStore
from georemind.storage.json_store import JsonFileStore
from georemind.storage.memory import InMemoryStore
from georemind.suggestions.ranker import (
    build_suggestions,
    nearest_reminder,
    suggestions_for_now,
    time_based_suggestions,
)

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

_STATUS_BY_CODE = {
    InvalidCoordinate.code: 400,
    InvalidRadius.code: 400,
    NotFound.code: 404,
    MapsServiceError.code: 502,
    StorageUnavailable.code: 503,
}


@lru_cache
def _store() -> GeoStore:
    settings = get_settings()
    if settings.storage.backend == "memory":
        return InMemoryStore()
    return JsonFileStore(resolve_project_path(settings.storage.path))


@lru_cache
def _tracker() -> ProximityStateTracker:
    cfg = get_settings().proximity
    return ProximityStateTracker(ttl_seconds=cfg.state_ttl_seconds, emit_within=cfg.emit_within)


@lru_cache
def _maps() -> MapsClient:
    settings = get_settings()
    cache = FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )
    return MapsClient(settings, cache)


def _call(fn: Callable[[], T]) -> T:
    """Run a core call and translate typed errors into HTTP errors."""
    try:
        return fn()
    except GeoRemindError as e:
        status = _STATUS_BY_CODE.get(e.code, 500)
        raise HTTPException(status_code=status, detail={"code": e.code, "message": str(e)}) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": str(e)}) from e


def _owned(entity: T, user_id: str) -> T:
    if getattr(entity, "user_id", None) != user_id:
        raise NotFound(f"{type(entity).__name__} not found: {getattr(entity, 'id', '?')}")
    return entity


def _point(lon: float, lat: float) -> GeoPoint:
    return _call(lambda: GeoPoint(lon=lon, lat=lat))


@router.get("/health")
def health() -> dict:
    return {"status": "UP", "message": "Server is running and healthy"}


# Saved locations


@router.post("/api/locations", response_model=SavedLocation, status_code=201)
def create_location(payload: SavedLocationCreate, user_id: str = Header(..., alias="X-User-Id")) -> SavedLocation:
    location = SavedLocation(user_id=user_id, **payload.model_dump())
    return _call(lambda: _store().save_location(location))


@router.get("/api/locations", response_model=list[SavedLocation])
def list_locations(user_id: str = Header(..., alias="X-User-Id")) -> list[SavedLocation]:
    return _call(lambda: _store().list_locations(user_id))


@router.get("/api/locations/{location_id}", response_model=SavedLocation)
def get_location(location_id: str, user_id: str = Header(..., alias="X-User-Id")) -> SavedLocation:
    return _call(lambda: _owned(_store().get_location(location_id), user_id))


@router.delete("/api/locations/{location_id}")
def delete_location(location_id: str, user_id: str = Header(..., alias="X-User-Id")) -> dict:
    def run() -> None:
        _owned(_store().get_location(location_id), user_id)
        _store().delete_location(location_id)
        _tracker().forget(user_id, location_id)

    _call(run)
    return {"message": "Location deleted successfully"}


# Reminders


@router.post("/api/reminders", response_model=Reminder, status_code=201)
def create_reminder(payload: ReminderCreate, user_id: str = Header(..., alias="X-User-Id")) -> Reminder:
    reminder = Reminder(user_id=user_id, **payload.model_dump())
    return _call(lambda: _store().save_reminder(reminder))


@router.get("/api/reminders", response_model=list[Reminder])
def list_reminders(user_id: str = Header(..., alias="X-User-Id")) -> list[Reminder]:
    return _call(lambda: _store().list_reminders(user_id))


@router.get("/api/reminders/nearest")
def get_nearest_reminder(
    lon: float = Query(...),
    lat: float = Query(...),
    user_id: str = Header(..., alias="X-User-Id"),
) -> dict:
    match: NearestMatch | None = _call(lambda: nearest_reminder(_store(), user_id, GeoPoint(lon=lon, lat=lat)))
    if match is None:
        return {"reminder": None, "distance_m": None, "message": "No reminders found"}
    return {"reminder": match.entity.model_dump(mode="json"), "distance_m": match.distance_m}


@router.delete("/api/reminders/{reminder_id}")
def delete_reminder(reminder_id: str, user_id: str = Header(..., alias="X-User-Id")) -> dict:
    def run() -> None:
        _owned(_store().get_reminder(reminder_id), user_id)
        _store().delete_reminder(reminder_id)
        _tracker().forget(user_id, reminder_id)

    _call(run)
    return {"message": "Reminder deleted successfully"}


# Triggers


@router.post("/api/triggers", response_model=Trigger, status_code=201)
def create_trigger(payload: TriggerCreate, user_id: str = Header(..., alias="X-User-Id")) -> Trigger:
    trigger = Trigger(user_id=user_id, **payload.model_dump())
    return _call(lambda: _store().save_trigger(trigger))


@router.get("/api/triggers", response_model=list[Trigger])
def list_triggers(user_id: str = Header(..., alias="X-User-Id")) -> list[Trigger]:
    return _call(lambda: _store().list_triggers(user_id))


# History


@router.post("/api/history/{kind}", response_model=HistoryRecord)
def post_observation(
    kind: HistoryKind,
    payload: ObservationCreate,
    user_id: str = Header(..., alias="X-User-Id"),
) -> HistoryRecord:
    cfg = get_settings().proximity
    return _call(
        lambda: record_observation(
            _store(),
            user_id,
            payload.location.point,
            kind=kind,
            increment_by=payload.frequency,
            match_radius_m=cfg.match_radius_m,
            policy=cfg.match_policy,
        )
    )


@router.get("/api/history/{kind}", response_model=list[HistoryRecord])
def list_history(kind: HistoryKind, user_id: str = Header(..., alias="X-User-Id")) -> list[HistoryRecord]:
    return _call(lambda: _store().list_history(user_id, kind))


@router.get("/api/history/{kind}/top", response_model=list[HistoryRecord])
def top_history(
    kind: HistoryKind,
    limit: int = Query(3, ge=1, le=100),
    user_id: str = Header(..., alias="X-User-Id"),
) -> list[HistoryRecord]:
    return _call(lambda: rank_by_frequency(_store(), user_id, kind=kind, limit=limit))


@router.get("/api/history/{kind}/trends", response_model=list[FrequentCluster])
def get_trends(kind: HistoryKind, user_id: str = Header(..., alias="X-User-Id")) -> list[FrequentCluster]:
    return _call(lambda: history_trends(_store(), user_id, kind=kind))


@router.patch("/api/history/{kind}/{record_id}", response_model=HistoryRecord)
def patch_history(
    kind: HistoryKind,
    record_id: str,
    payload: ObservationCreate,
    user_id: str = Header(..., alias="X-User-Id"),
) -> HistoryRecord:
    def run() -> HistoryRecord:
        record = _owned(_store().get_history(record_id), user_id)
        if record.kind != kind:
            raise NotFound(f"History record not found: {record_id}")
        return relocate_or_increment(
            _store(),
            record_id,
            payload.location.point,
            match_radius_m=get_settings().proximity.match_radius_m,
        )

    return _call(run)


@router.delete("/api/history/{kind}/{record_id}")
def delete_history(kind: HistoryKind, record_id: str, user_id: str = Header(..., alias="X-User-Id")) -> dict:
    def run() -> None:
        record = _owned(_store().get_history(record_id), user_id)
        if record.kind != kind:
            raise NotFound(f"History record not found: {record_id}")
        _store().delete_history(record_id)

    _call(run)
    return {"message": "History record deleted successfully"}


# Proximity


def _tracked_entities(user_id: str) -> list[Any]:
    store = _store()
    reminders = [r for r in store.list_reminders(user_id) if not r.is_completed]
    return [*reminders, *store.list_locations(user_id), *store.list_triggers(user_id)]


@router.post("/api/proximity/check", response_model=list[ProximityEvent])
def check_proximity(position: Position, user_id: str = Header(..., alias="X-User-Id")) -> list[ProximityEvent]:
    return _call(lambda: _tracker().evaluate_from(user_id, position.point, lambda: _tracked_entities(user_id)))


# Places


@router.get("/api/places/nearby")
def nearby_places(
    lon: float = Query(...),
    lat: float = Query(...),
    keyword: str = Query(..., min_length=1),
    radius: int | None = Query(None, gt=0, le=50_000),
    user_id: str = Header(..., alias="X-User-Id"),
) -> list[dict[str, Any]]:
    """Mapping-service place search around (lon, lat); radius defaults to `maps.search_radius_m`."""
    point = _point(lon, lat)
    return _call(lambda: _maps().search_nearby(point, keyword, radius_m=radius))


# Suggestions


@router.get("/api/suggestions", response_model=list[Suggestion])
def get_suggestions(
    kind: HistoryKind = Query("parked"),
    user_id: str = Header(..., alias="X-User-Id"),
) -> list[Suggestion]:
    cfg = get_settings().suggestions
    return _call(
        lambda: list(
            build_suggestions(
                _store(),
                user_id,
                kind=kind,
                min_cluster_frequency=cfg.min_cluster_frequency,
                cluster_radius_m=cfg.cluster_radius_m,
                limit=cfg.general_limit,
            )
        )
    )


@router.get("/api/suggestions/time-based", response_model=list[Suggestion])
def get_time_based_suggestions(
    kind: HistoryKind = Query("parked"),
    user_id: str = Header(..., alias="X-User-Id"),
) -> list[Suggestion]:
    settings = get_settings()
    return _call(
        lambda: list(
            time_based_suggestions(
                _store(),
                user_id,
                kind=kind,
                timezone=settings.app.timezone,
                default_radius_m=settings.suggestions.default_radius_m,
                limit=settings.suggestions.time_based_limit,
            )
        )
    )


@router.get("/api/suggestions/now", response_model=list[Suggestion])
def get_suggestions_now(
    lon: float = Query(...),
    lat: float = Query(...),
    navigate: bool = Query(False),
    kind: HistoryKind = Query("parked"),
    user_id: str = Header(..., alias="X-User-Id"),
) -> list[Suggestion]:
    """Places the user usually visits around this time, optionally with directions from (lon, lat)."""
    settings = get_settings()
    current = _point(lon, lat)
    suggestions = _call(
        lambda: list(
            suggestions_for_now(
                _store(),
                user_id,
                kind=kind,
                timezone=settings.app.timezone,
                window_minutes=settings.suggestions.time_window_minutes,
                default_radius_m=settings.suggestions.default_radius_m,
                limit=settings.suggestions.now_limit,
            )
        )
    )
    if not navigate:
        return suggestions

    out: list[Suggestion] = []
    for s in suggestions:
        destination = GeoPoint.from_coordinates(s.location.coordinates)
        try:
            nav = _maps().navigation_summary(current, destination)
        except MapsServiceError as e:
            logger.warning("Navigation lookup failed for %s: %s", s.location.coordinates, str(e))
            out.append(s)
            continue
        out.append(s.model_copy(update={"navigation": nav}))
    return out
