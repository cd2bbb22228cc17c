from datetime import datetime, timezone

import pytest
from starlette.testclient import TestClient

import georemind.api.routes as routes
from georemind.api.app import app
from georemind.core.errors import MapsServiceError, StorageUnavailable
from georemind.domain.models import Suggestion, SuggestionLocation
from georemind.proximity.tracker import ProximityStateTracker
from georemind.storage.memory import InMemoryStore

OFFICE = [-76.7936, 18.0179]
NEAR = {"lon": -76.79365, "lat": 18.01795}
FAR = {"lon": -76.80, "lat": 18.02}

U1 = {"X-User-Id": "u1"}
U2 = {"X-User-Id": "u2"}


@pytest.fixture
def store(monkeypatch):
    # Patch the cached factories so API tests stay in memory.
    store = InMemoryStore()
    tracker = ProximityStateTracker()
    monkeypatch.setattr(routes, "_store", lambda: store)
    monkeypatch.setattr(routes, "_tracker", lambda: tracker)
    return store


@pytest.fixture
def client(store):
    return TestClient(app)


def _point(coords):
    return {"type": "Point", "coordinates": coords}


def _create_office(client):
    resp = client.post(
        "/api/locations",
        json={"name": "Office", "location": _point(OFFICE), "radius": 100, "place_type": "work"},
        headers=U1,
    )
    assert resp.status_code == 201
    return resp.json()


def test_health(client):
    assert client.get("/health").json()["status"] == "UP"


def test_locations_crud_and_ownership(client):
    office = _create_office(client)
    assert office["user_id"] == "u1"
    assert office["location"] == {"type": "Point", "coordinates": OFFICE}

    assert [loc["id"] for loc in client.get("/api/locations", headers=U1).json()] == [office["id"]]
    assert client.get("/api/locations", headers=U2).json() == []

    other = client.get(f"/api/locations/{office['id']}", headers=U2)
    assert other.status_code == 404
    assert other.json()["detail"]["code"] == "NOT_FOUND"
    assert client.delete(f"/api/locations/{office['id']}", headers=U2).status_code == 404

    assert client.delete(f"/api/locations/{office['id']}", headers=U1).status_code == 200
    assert client.get(f"/api/locations/{office['id']}", headers=U1).status_code == 404


def test_missing_user_header_is_rejected(client):
    assert client.get("/api/reminders").status_code == 422


def test_invalid_coordinates(client):
    body = {"message": "x", "location": _point([18.0179, 200]), "radius": 10}
    assert client.post("/api/reminders", json=body, headers=U1).status_code == 422

    resp = client.get("/api/reminders/nearest", params={"lon": 200, "lat": 0}, headers=U1)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_COORDINATE"


def test_proximity_check_emits_transitions(client):
    office = _create_office(client)
    reminder = client.post(
        "/api/reminders",
        json={"message": "Pick up badge", "location": _point(OFFICE), "radius": 50},
        headers=U1,
    ).json()

    entered = client.post("/api/proximity/check", json=NEAR, headers=U1).json()
    assert [(e["entity_id"], e["entity_type"], e["status"]) for e in entered] == [
        (reminder["id"], "reminder", "entered"),
        (office["id"], "location", "entered"),
    ]

    within = client.post("/api/proximity/check", json=NEAR, headers=U1).json()
    assert {e["status"] for e in within} == {"within"}

    exited = client.post("/api/proximity/check", json=FAR, headers=U1).json()
    assert {e["status"] for e in exited} == {"exited"}
    assert client.post("/api/proximity/check", json=FAR, headers=U1).json() == []


def test_nearest_reminder(client):
    assert client.get("/api/reminders/nearest", params=FAR, headers=U1).json()["reminder"] is None

    client.post("/api/reminders", json={"message": "m", "location": _point(OFFICE), "radius": 50}, headers=U1)
    data = client.get("/api/reminders/nearest", params=NEAR, headers=U1).json()
    assert data["reminder"]["message"] == "m"
    assert data["distance_m"] < 10


def test_history_folding_and_suggestions(client):
    _create_office(client)
    ids = set()
    for _ in range(3):
        resp = client.post("/api/history/parked", json={"location": _point(OFFICE)}, headers=U1)
        assert resp.status_code == 200
        ids.add(resp.json()["id"])
    assert len(ids) == 1

    rows = client.get("/api/history/parked", headers=U1).json()
    assert len(rows) == 1 and rows[0]["frequency"] == 3
    assert client.get("/api/history/parked/top", params={"limit": 1}, headers=U1).json()[0]["frequency"] == 3
    assert client.get("/api/history/parked/trends", headers=U1).json()[0]["total_frequency"] == 3

    suggestions = client.get("/api/suggestions", headers=U1).json()
    assert {s["type"] for s in suggestions} == {"navigation", "reminder"}

    time_based = client.get("/api/suggestions/time-based", headers=U1).json()
    assert time_based[0]["type"] == "time-based"
    assert time_based[0]["location"]["name"] == "Office"


def test_history_patch_and_delete(client):
    record = client.post("/api/history/driving", json={"location": _point(OFFICE)}, headers=U1).json()

    moved = client.patch(
        f"/api/history/driving/{record['id']}", json={"location": _point([FAR["lon"], FAR["lat"]])}, headers=U1
    ).json()
    assert moved["location"]["coordinates"] == [FAR["lon"], FAR["lat"]]
    assert moved["frequency"] == 1

    wrong_kind = client.patch(f"/api/history/parked/{record['id']}", json={"location": _point(OFFICE)}, headers=U1)
    assert wrong_kind.status_code == 404
    assert client.delete(f"/api/history/driving/{record['id']}", headers=U2).status_code == 404
    assert client.delete(f"/api/history/driving/{record['id']}", headers=U1).status_code == 200
    assert client.get("/api/history/driving", headers=U1).json() == []


def test_storage_failure_maps_to_503(client, store, monkeypatch):
    def broken(user_id):
        raise StorageUnavailable("disk gone")

    monkeypatch.setattr(store, "list_reminders", broken)

    resp = client.get("/api/reminders", headers=U1)
    assert resp.status_code == 503
    assert resp.json()["detail"] == {"code": "STORAGE_UNAVAILABLE", "message": "disk gone"}
    assert client.post("/api/proximity/check", json=NEAR, headers=U1).status_code == 503


def test_suggestions_now_keeps_items_when_navigation_fails(client, monkeypatch):
    class _BrokenMaps:
        def navigation_summary(self, origin, destination):
            raise MapsServiceError("Maps distancematrix failed: OVER_QUERY_LIMIT")

    suggestion = Suggestion(
        type="time-based",
        location=SuggestionLocation(name="Office", coordinates=tuple(OFFICE)),
        message="You typically visit Office at 08:30. Would you like to go there now?",
        frequency=3,
        last_seen=datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc),
    )
    monkeypatch.setattr(routes, "suggestions_for_now", lambda *args, **kwargs: iter([suggestion]))
    monkeypatch.setattr(routes, "_maps", lambda: _BrokenMaps())

    resp = client.get("/api/suggestions/now", params={**FAR, "navigate": "true"}, headers=U1)

    assert resp.status_code == 200
    (item,) = resp.json()
    assert item["message"] == suggestion.message
    assert item["navigation"] is None


def test_nearby_places(client, monkeypatch):
    class _StubMaps:
        def __init__(self):
            self.calls = []

        def search_nearby(self, point, keyword, *, radius_m=None):
            self.calls.append((point.lon, point.lat, keyword, radius_m))
            if keyword == "down":
                raise MapsServiceError("Maps place/nearbysearch failed: OVER_QUERY_LIMIT")
            return [{"name": "Hope Gardens Parking", "vicinity": "Hope Rd"}]

    maps = _StubMaps()
    monkeypatch.setattr(routes, "_maps", lambda: maps)

    resp = client.get("/api/places/nearby", params={**NEAR, "keyword": "parking", "radius": 500}, headers=U1)
    assert resp.status_code == 200
    assert resp.json() == [{"name": "Hope Gardens Parking", "vicinity": "Hope Rd"}]
    assert maps.calls == [(NEAR["lon"], NEAR["lat"], "parking", 500)]

    failed = client.get("/api/places/nearby", params={**NEAR, "keyword": "down"}, headers=U1)
    assert failed.status_code == 502
    assert failed.json()["detail"]["code"] == "MAPS_ERROR"

    bad = client.get("/api/places/nearby", params={"lon": 0, "lat": 95, "keyword": "parking"}, headers=U1)
    assert bad.status_code == 400


def test_history_patch_onto_another_record_merges(client):
    kept = client.post("/api/history/parked", json={"location": _point(OFFICE)}, headers=U1).json()
    moved = client.post(
        "/api/history/parked", json={"location": _point([FAR["lon"], FAR["lat"]])}, headers=U1
    ).json()

    resp = client.patch(
        f"/api/history/parked/{moved['id']}", json={"location": _point([NEAR["lon"], NEAR["lat"]])}, headers=U1
    )

    assert resp.status_code == 200
    assert resp.json()["id"] == kept["id"]
    assert resp.json()["frequency"] == 2
    assert [r["id"] for r in client.get("/api/history/parked", headers=U1).json()] == [kept["id"]]
