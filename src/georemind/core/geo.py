from __future__ import annotations
from dataclasses import dataclass
from math import atan2, cos, isfinite, radians, sin, sqrt
from typing import Callable, Iterable, Sequence, TypeVar

from georemind.core.errors import InvalidCoordinate, InvalidRadius

"""
Geospatial helpers.

Distance and radius membership for the proximity core. Points are always
(lon, lat) with named fields; bare pairs only cross this boundary through
`GeoPoint.from_coordinates`, which reads them in GeoJSON order.
"""

EARTH_RADIUS_M = 6_371_000.0

T = TypeVar("T")


@dataclass(frozen=True)
class GeoPoint:
    """A longitude/latitude pair in decimal degrees (WGS84)."""

    lon: float
    lat: float

    def __post_init__(self) -> None:
        try:
            lon = float(self.lon)
            lat = float(self.lat)
        except (TypeError, ValueError) as e:
            raise InvalidCoordinate(f"Coordinates must be numbers, got lon={self.lon!r} lat={self.lat!r}") from e
        if not (isfinite(lon) and -180.0 <= lon <= 180.0):
            raise InvalidCoordinate(f"Longitude out of range [-180, 180]: {self.lon!r}")
        if not (isfinite(lat) and -90.0 <= lat <= 90.0):
            raise InvalidCoordinate(f"Latitude out of range [-90, 90]: {self.lat!r}")
        object.__setattr__(self, "lon", lon)
        object.__setattr__(self, "lat", lat)

    @classmethod
    def from_coordinates(cls, coordinates: Sequence[float]) -> "GeoPoint":
        """Build a point from a GeoJSON `[lon, lat]` pair."""
        if not isinstance(coordinates, Sequence) or isinstance(coordinates, (str, bytes)) or len(coordinates) != 2:
            raise InvalidCoordinate(f"Coordinates must be a [longitude, latitude] pair, got {coordinates!r}")
        return cls(lon=coordinates[0], lat=coordinates[1])

    def to_coordinates(self) -> list[float]:
        return [self.lon, self.lat]


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle (haversine) distance in meters between two points."""
    lat1 = radians(a.lat)
    lat2 = radians(b.lat)
    dlat = radians(b.lat - a.lat)
    dlon = radians(b.lon - a.lon)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * atan2(sqrt(h), sqrt(1 - h))


def check_radius(radius_m: float) -> float:
    """Return `radius_m` as a float, raising `InvalidRadius` unless it is > 0."""
    try:
        r = float(radius_m)
    except (TypeError, ValueError) as e:
        raise InvalidRadius(f"Radius must be a number of meters, got {radius_m!r}") from e
    if not isfinite(r) or r <= 0:
        raise InvalidRadius(f"Radius must be > 0 meters, got {radius_m!r}")
    return r


def is_within(user_pos: GeoPoint, target_pos: GeoPoint, radius_m: float) -> bool:
    """True if `user_pos` is inside or exactly on the circle (`target_pos`, `radius_m`)."""
    return distance_m(user_pos, target_pos) <= check_radius(radius_m)


def nearest(
    origin: GeoPoint,
    candidates: Iterable[T],
    *,
    get_point: Callable[[T], GeoPoint],
) -> tuple[T, float] | None:
    """Return the candidate closest to `origin` and its distance, or None if there is none.

    Ties keep the first candidate in input order. Candidates whose point cannot be
    extracted are skipped.
    """
    best: tuple[T, float] | None = None
    for c in candidates:
        try:
            pt = get_point(c)
        except (InvalidCoordinate, AttributeError, KeyError, TypeError, ValueError):
            continue
        d = distance_m(origin, pt)
        if best is None or d < best[1]:
            best = (c, d)
    return best
