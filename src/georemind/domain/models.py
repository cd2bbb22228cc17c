"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- stored geo-entities (`Reminder`, `SavedLocation`, `Trigger`, `HistoryRecord`)
- derived outputs (`ProximityEvent`, `FrequentCluster`, `Suggestion`, `NearestMatch`)
- API/CLI inputs (`*Create` payloads, `Position`)

Every stored location is a GeoJSON point: `{"type": "Point", "coordinates": [lon, lat]}`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from georemind.core.geo import GeoPoint as CoreGeoPoint
from georemind.core.time import utcnow

HistoryKind = Literal["parked", "driving"]
EntityType = Literal["reminder", "location", "trigger"]
ProximityStatus = Literal["entered", "exited", "within"]
SuggestionType = Literal["navigation", "reminder", "time-based"]


def new_id() -> str:
    return uuid.uuid4().hex


class PointGeometry(BaseModel):
    """A GeoJSON point; `coordinates` is `[longitude, latitude]`."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]

    @field_validator("coordinates")
    @classmethod
    def _validate_ranges(cls, value: tuple[float, float]) -> tuple[float, float]:
        # Raises InvalidCoordinate (a ValueError) so Pydantic reports it as a validation error.
        pt = CoreGeoPoint.from_coordinates(value)
        return (pt.lon, pt.lat)

    @property
    def point(self) -> CoreGeoPoint:
        return CoreGeoPoint(lon=self.coordinates[0], lat=self.coordinates[1])

    @classmethod
    def from_point(cls, point: CoreGeoPoint) -> "PointGeometry":
        return cls(coordinates=(point.lon, point.lat))


class Position(BaseModel):
    """A live position with explicitly named axes."""

    lon: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    @property
    def point(self) -> CoreGeoPoint:
        return CoreGeoPoint(lon=self.lon, lat=self.lat)


class Reminder(BaseModel):
    """A message the user wants surfaced when near a place."""

    id: str = Field(default_factory=new_id)
    user_id: str
    message: str = Field(..., min_length=1)
    location: PointGeometry
    radius: float = Field(..., gt=0)
    is_completed: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class SavedLocation(BaseModel):
    """A named place (home, office, gym...) with its geofence radius."""

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1)
    location: PointGeometry
    radius: float = Field(..., gt=0)
    place_type: str = "unknown"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Trigger(BaseModel):
    """A proximity trigger with a free-form action ("Send reminder", "Launch navigation")."""

    id: str = Field(default_factory=new_id)
    user_id: str
    location: PointGeometry
    action: str = Field(..., min_length=1)
    radius: float = Field(500, gt=0)
    created_at: datetime = Field(default_factory=utcnow)


class HistoryRecord(BaseModel):
    """A frequency-counted place where the user parked or drove through."""

    id: str = Field(default_factory=new_id)
    user_id: str
    kind: HistoryKind = "parked"
    location: PointGeometry
    frequency: int = Field(1, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def point(self) -> CoreGeoPoint:
        return self.location.point


class ProximityEvent(BaseModel):
    """A geofence transition (or continued presence) for one entity."""

    user_id: str
    entity_id: str
    entity_type: str
    status: ProximityStatus
    distance_m: float


class FrequentCluster(BaseModel):
    """History rows sharing one stored coordinate, with their summed frequency."""

    location: PointGeometry
    total_frequency: int
    count: int


class TimeLabel(BaseModel):
    day: int = Field(..., ge=0, le=6)
    day_name: str
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)


class SuggestionLocation(BaseModel):
    name: str
    coordinates: tuple[float, float]
    place_type: str = "unknown"
    radius: float | None = None


class NavigationStep(BaseModel):
    instruction: str
    distance: str = ""


class NavigationSummary(BaseModel):
    current_address: str | None = None
    distance: str = "Unknown distance"
    duration: str = "Unknown duration"
    steps: list[NavigationStep] = Field(default_factory=list)
    overview: str = ""


class Suggestion(BaseModel):
    """A derived, non-persisted prompt for the user."""

    type: SuggestionType
    location: SuggestionLocation
    message: str
    frequency: int
    last_seen: datetime
    time_label: TimeLabel | None = None
    navigation: NavigationSummary | None = None


class NearestMatch(BaseModel):
    entity: Any
    distance_m: float


class SavedLocationCreate(BaseModel):
    name: str = Field(..., min_length=1)
    location: PointGeometry
    radius: float = Field(..., gt=0)
    place_type: str = "unknown"


class ReminderCreate(BaseModel):
    message: str = Field(..., min_length=1)
    location: PointGeometry
    radius: float = Field(..., gt=0)


class TriggerCreate(BaseModel):
    location: PointGeometry
    action: str = Field(..., min_length=1)
    radius: float = Field(500, gt=0)


class ObservationCreate(BaseModel):
    location: PointGeometry
    frequency: int = Field(1, ge=1)
