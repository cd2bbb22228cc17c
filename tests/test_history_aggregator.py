import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from georemind.core.errors import InvalidRadius, NotFound, StorageUnavailable
from georemind.core.geo import GeoPoint, distance_m
from georemind.domain.models import HistoryRecord, PointGeometry
from georemind.history.aggregator import (
    aggregate_frequent_clusters,
    history_trends,
    rank_by_frequency,
    record_observation,
    relocate_or_increment,
)
from georemind.storage.memory import InMemoryStore

A = GeoPoint(lon=-76.7936, lat=18.0179)
NEAR_A = GeoPoint(lon=-76.79365, lat=18.01795)  # ~6m from A
FAR = GeoPoint(lon=-76.80, lat=18.02)  # ~700m from A

T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def _record(rid: str, point: GeoPoint, frequency: int, *, updated_at=T0, kind="parked", user_id="u1"):
    return HistoryRecord(
        id=rid,
        user_id=user_id,
        kind=kind,
        location=PointGeometry.from_point(point),
        frequency=frequency,
        created_at=T0,
        updated_at=updated_at,
    )


def test_observation_near_existing_record_increments_in_place():
    store = InMemoryStore()
    store.save_history(_record("a", A, 1))

    rec = record_observation(store, "u1", NEAR_A, match_radius_m=50)

    assert rec.id == "a"
    assert rec.frequency == 2
    rows = store.list_history("u1", "parked")
    assert len(rows) == 1
    assert rows[0].frequency == 2
    # The stored location is not moved by a matching observation.
    assert rows[0].location.coordinates == (A.lon, A.lat)


def test_observation_far_from_everything_creates_new_record():
    store = InMemoryStore()
    store.save_history(_record("a", A, 1))

    rec = record_observation(store, "u1", FAR, match_radius_m=50)

    assert rec.id != "a"
    assert rec.frequency == 1
    assert rec.location.coordinates == (FAR.lon, FAR.lat)
    assert len(store.list_history("u1", "parked")) == 2


def test_increment_by_is_used_for_new_and_matched_records():
    store = InMemoryStore()
    created = record_observation(store, "u1", A, match_radius_m=50, increment_by=3)
    assert created.frequency == 3

    matched = record_observation(store, "u1", NEAR_A, match_radius_m=50, increment_by=2)
    assert matched.id == created.id
    assert matched.frequency == 5


def test_history_is_scoped_by_user_and_kind():
    store = InMemoryStore()
    store.save_history(_record("a", A, 1))

    other_user = record_observation(store, "u2", NEAR_A, match_radius_m=50)
    driving = record_observation(store, "u1", NEAR_A, match_radius_m=50, kind="driving")

    assert other_user.id != "a" and other_user.frequency == 1
    assert driving.id != "a" and driving.kind == "driving"
    assert store.get_history("a").frequency == 1


def test_first_match_wins_in_stored_order():
    store = InMemoryStore()
    # Both records are within 50m of the observation; the farther one was stored first.
    farther = GeoPoint(lon=-76.7940, lat=18.0179)  # ~42m west of A
    store.save_history(_record("first", farther, 1))
    store.save_history(_record("second", A, 1))

    assert record_observation(store, "u1", A, match_radius_m=50).id == "first"


def test_nearest_policy_picks_closest_record():
    store = InMemoryStore()
    farther = GeoPoint(lon=-76.7940, lat=18.0179)
    store.save_history(_record("first", farther, 1))
    store.save_history(_record("second", A, 1))

    assert record_observation(store, "u1", A, match_radius_m=50, policy="nearest").id == "second"


@pytest.mark.parametrize("radius", [0, -1])
def test_match_radius_must_be_positive(radius):
    with pytest.raises(InvalidRadius):
        record_observation(InMemoryStore(), "u1", A, match_radius_m=radius)


def test_increment_must_be_at_least_one():
    with pytest.raises(ValueError):
        record_observation(InMemoryStore(), "u1", A, match_radius_m=50, increment_by=0)


def test_storage_failure_propagates():
    class BrokenStore(InMemoryStore):
        def save_history(self, record):
            raise StorageUnavailable("write failed")

    with pytest.raises(StorageUnavailable):
        record_observation(BrokenStore(), "u1", A, match_radius_m=50)


def test_rank_by_frequency_orders_desc_with_recent_first_on_ties():
    store = InMemoryStore()
    store.save_history(_record("low", A, 1))
    store.save_history(_record("tie-old", FAR, 4, updated_at=T0))
    store.save_history(_record("top", GeoPoint(lon=0, lat=0), 9))
    store.save_history(_record("tie-new", GeoPoint(lon=1, lat=1), 4, updated_at=T0 + timedelta(hours=1)))

    ranked = rank_by_frequency(store, "u1", kind="parked")
    assert [r.id for r in ranked] == ["top", "tie-new", "tie-old", "low"]
    assert [r.id for r in rank_by_frequency(store, "u1", kind="parked", limit=2)] == ["top", "tie-new"]


def test_frequent_clusters_group_exact_coordinates_and_apply_threshold():
    store = InMemoryStore()
    store.save_history(_record("a1", A, 2))
    store.save_history(_record("a2", A, 2))
    store.save_history(_record("far", FAR, 1))

    clusters = aggregate_frequent_clusters(store, "u1", kind="parked", min_frequency=3)
    assert len(clusters) == 1
    assert clusters[0].location.coordinates == (A.lon, A.lat)
    assert clusters[0].total_frequency == 4
    assert clusters[0].count == 2

    trends = history_trends(store, "u1", kind="parked")
    assert [c.total_frequency for c in trends] == [4, 1]


def test_relocate_or_increment():
    store = InMemoryStore()
    store.save_history(_record("d", A, 1, kind="driving"))

    near = relocate_or_increment(store, "d", NEAR_A, match_radius_m=50)
    assert near.frequency == 2
    assert near.location.coordinates == (A.lon, A.lat)

    moved = relocate_or_increment(store, "d", FAR, match_radius_m=50)
    assert moved.frequency == 2
    assert moved.location.coordinates == (FAR.lon, FAR.lat)

    with pytest.raises(NotFound):
        relocate_or_increment(store, "missing", A, match_radius_m=50)


def test_relocating_onto_another_record_merges_them():
    store = InMemoryStore()
    store.save_history(_record("a", A, 3))
    store.save_history(_record("b", FAR, 2))

    merged = relocate_or_increment(store, "b", NEAR_A, match_radius_m=50)

    assert merged.id == "a"
    assert merged.frequency == 5
    assert merged.location.coordinates == (A.lon, A.lat)
    rows = store.list_history("u1", "parked")
    assert [r.id for r in rows] == ["a"]
    with pytest.raises(NotFound):
        store.get_history("b")


def test_relocation_keeps_records_apart():
    store = InMemoryStore()
    store.save_history(_record("a", A, 1))
    store.save_history(_record("b", FAR, 1))
    store.save_history(_record("c", GeoPoint(lon=0, lat=0), 1))

    relocate_or_increment(store, "b", NEAR_A, match_radius_m=50)
    relocate_or_increment(store, "c", GeoPoint(lon=0.01, lat=0), match_radius_m=50)

    rows = store.list_history("u1", "parked")
    for i, r in enumerate(rows):
        for other in rows[i + 1 :]:
            assert distance_m(r.point, other.point) > 50


def test_concurrent_observations_fold_into_one_record():
    class SlowStore(InMemoryStore):
        def list_history(self, user_id, kind):
            rows = super().list_history(user_id, kind)
            time.sleep(0.02)
            return rows

    store = SlowStore()
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        record_observation(store, "u1", A, match_radius_m=50)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    rows = store.list_history("u1", "parked")
    assert len(rows) == 1
    assert rows[0].frequency == 8


def test_rank_reads_naive_timestamps_as_utc():
    store = InMemoryStore()
    store.save_history(_record("aware", A, 2, updated_at=T0))
    # One hour after T0 when read as UTC.
    store.save_history(_record("naive", FAR, 2, updated_at=datetime(2026, 1, 5, 9, 0)))

    assert [r.id for r in rank_by_frequency(store, "u1")] == ["naive", "aware"]
