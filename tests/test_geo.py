import math

import pytest

from georemind.core.errors import InvalidCoordinate, InvalidRadius
from georemind.core.geo import EARTH_RADIUS_M, GeoPoint, distance_m, is_within, nearest


def test_distance_same_point_is_zero():
    for p in [GeoPoint(lon=0, lat=0), GeoPoint(lon=-76.7936, lat=18.0179), GeoPoint(lon=180, lat=-90)]:
        assert distance_m(p, p) == pytest.approx(0.0, abs=1e-6)


def test_distance_is_symmetric():
    a = GeoPoint(lon=-76.7936, lat=18.0179)
    b = GeoPoint(lon=121.5170, lat=25.0478)
    assert distance_m(a, b) == pytest.approx(distance_m(b, a))


def test_one_degree_of_latitude_at_equator():
    a = GeoPoint(lon=0, lat=0)
    b = GeoPoint(lon=0, lat=1)
    assert distance_m(a, b) == pytest.approx(111_195, rel=1e-3)


def test_antipodal_points_are_half_circumference_apart():
    a = GeoPoint(lon=0, lat=0)
    b = GeoPoint(lon=180, lat=0)
    assert distance_m(a, b) == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-9)
    assert distance_m(GeoPoint(lon=10, lat=90), GeoPoint(lon=10, lat=-90)) == pytest.approx(
        math.pi * EARTH_RADIUS_M, rel=1e-9
    )


def test_longitude_comes_first():
    # Kingston, Jamaica; swapping the axes would be rejected or land elsewhere.
    p = GeoPoint.from_coordinates([-76.7936, 18.0179])
    assert p.lon == -76.7936
    assert p.lat == 18.0179
    assert p.to_coordinates() == [-76.7936, 18.0179]


@pytest.mark.parametrize(
    "lon,lat",
    [(181, 0), (-180.5, 0), (0, 90.1), (0, -91), (float("nan"), 0), (0, float("inf")), ("x", 0)],
)
def test_invalid_coordinates_are_rejected(lon, lat):
    with pytest.raises(InvalidCoordinate):
        GeoPoint(lon=lon, lat=lat)


def test_from_coordinates_requires_a_pair():
    with pytest.raises(InvalidCoordinate):
        GeoPoint.from_coordinates([1.0])
    with pytest.raises(InvalidCoordinate):
        GeoPoint.from_coordinates([1.0, 2.0, 3.0])


def test_is_within_matches_distance_and_boundary_is_inclusive():
    a = GeoPoint(lon=-76.7936, lat=18.0179)
    b = GeoPoint(lon=-76.79365, lat=18.01795)
    d = distance_m(a, b)

    assert is_within(a, b, d) is True
    assert is_within(a, b, d + 0.01) is True
    assert is_within(a, b, d - 0.01) is False


@pytest.mark.parametrize("radius", [0, -5, float("nan"), None])
def test_is_within_rejects_non_positive_radius(radius):
    p = GeoPoint(lon=0, lat=0)
    with pytest.raises(InvalidRadius):
        is_within(p, p, radius)


def test_nearest_returns_none_for_empty_candidates():
    assert nearest(GeoPoint(lon=0, lat=0), [], get_point=lambda c: c) is None


def test_nearest_keeps_first_on_ties_and_skips_bad_candidates():
    origin = GeoPoint(lon=0, lat=0)
    east = ("east", GeoPoint(lon=0.01, lat=0))
    west = ("west", GeoPoint(lon=-0.01, lat=0))
    bad = ("bad", None)

    def get_point(c):
        if c[1] is None:
            raise AttributeError("no location")
        return c[1]

    best, d = nearest(origin, [bad, east, west], get_point=get_point)
    assert best[0] == "east"
    assert d == pytest.approx(distance_m(origin, east[1]))
