"""Tests for GeoIndex radius queries and haversine distance."""
import math
import random

import pytest

from localmarket.errors import InvalidCoordinate, InvalidRadius
from localmarket.geo import GeoIndex, GeoPoint, distance_meters

ONE_DEGREE_AT_EQUATOR = 2 * math.pi * 6_371_000 / 360


def _scatter(index: GeoIndex, center, count: int, spread_deg: float, seed: int = 7) -> dict:
    rnd = random.Random(seed)
    points = {}
    for n in range(count):
        lat = center[0] + rnd.uniform(-spread_deg, spread_deg)
        lon = center[1] + rnd.uniform(-spread_deg, spread_deg)
        entity_id = f"v{n:04d}"
        index.index_location(entity_id, lat, lon)
        points[entity_id] = (lat, lon)
    return points


def test_haversine_one_degree():
    assert distance_meters((0, 0), (0, 1)) == pytest.approx(ONE_DEGREE_AT_EQUATOR, rel=1e-9)
    assert distance_meters((0, 0), (1, 0)) == pytest.approx(ONE_DEGREE_AT_EQUATOR, rel=1e-9)
    assert distance_meters((51.5, -0.12), (51.5, -0.12)) == 0


def test_haversine_is_symmetric():
    a, b = (40.7128, -74.0060), (48.8566, 2.3522)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))
    assert distance_meters(a, b) == pytest.approx(5_837_000, rel=0.01)


@pytest.mark.parametrize(
    "lat, lon",
    [(91, 0), (-90.5, 0), (0, 180.01), (0, -181), (float("nan"), 0), (0, float("inf")), ("12", 3), (True, 0)],
)
def test_invalid_coordinates_rejected(lat, lon):
    index = GeoIndex()
    with pytest.raises(InvalidCoordinate):
        index.index_location("v1", lat, lon)
    with pytest.raises(InvalidCoordinate):
        list(index.within_radius((lat, lon), 100))
    assert len(index) == 0


def test_boundary_coordinates_accepted():
    index = GeoIndex()
    index.index_location("north", 90, 180)
    index.index_location("south", -90, -180)
    assert index.location_of("north") == GeoPoint(90.0, 180.0)


@pytest.mark.parametrize("radius", [-1, float("nan"), float("inf"), "5km"])
def test_invalid_radius_rejected(radius):
    with pytest.raises(InvalidRadius):
        GeoIndex().within_radius((0, 0), radius)


def test_no_matches_is_empty_not_error():
    index = GeoIndex()
    assert list(index.within_radius((10, 10), 1000)) == []
    index.index_location("far", -10, -10)
    assert list(index.within_radius((10, 10), 1000)) == []


def test_results_sorted_by_distance_then_id():
    index = GeoIndex()
    index.index_location("b", 0, 0.01)
    index.index_location("a", 0, -0.01)
    index.index_location("c", 0, 0.005)
    results = list(index.within_radius((0, 0), 5000))
    assert [entity_id for entity_id, _ in results] == ["c", "a", "b"]
    assert results[1][1] == pytest.approx(results[2][1])


@pytest.mark.parametrize("radius", [50, 800, 5_000, 25_000, 300_000, 2_500_000])
def test_matches_brute_force(radius):
    index = GeoIndex()
    center = (40.7128, -74.0060)
    points = _scatter(index, center, 400, spread_deg=3.0)

    expected = sorted(
        (distance_meters(center, p), entity_id)
        for entity_id, p in points.items()
        if distance_meters(center, p) <= radius
    )
    results = list(index.within_radius(center, radius))

    assert [entity_id for entity_id, _ in results] == [entity_id for _, entity_id in expected]


def test_distance_monotonic_and_shrinking_radius_only_removes():
    index = GeoIndex()
    center = (48.8566, 2.3522)
    _scatter(index, center, 300, spread_deg=0.5, seed=11)

    large = list(index.within_radius(center, 40_000))
    distances = [d for _, d in large]
    assert distances == sorted(distances)

    for radius in (20_000, 5_000, 1_000):
        small = list(index.within_radius(center, radius))
        assert small == [(entity_id, d) for entity_id, d in large if d <= radius]


def test_query_across_antimeridian():
    index = GeoIndex()
    index.index_location("east", 0, 179.999)
    index.index_location("west", 0, -179.999)
    found = [entity_id for entity_id, _ in index.within_radius((0, 179.9995), 500)]
    assert sorted(found) == ["east", "west"]


def test_query_near_pole_scans_all_longitudes():
    index = GeoIndex()
    index.index_location("a", 89.999, 0)
    index.index_location("b", 89.999, 180)
    found = dict(index.within_radius((89.999, 0), 500))
    assert set(found) == {"a", "b"}
    assert found["b"] == pytest.approx(2 * 0.001 * ONE_DEGREE_AT_EQUATOR, rel=1e-3)


def test_reindex_moves_entity():
    index = GeoIndex()
    index.index_location("v1", 0, 0)
    index.index_location("v1", 10, 10)
    assert list(index.within_radius((0, 0), 1000)) == []
    assert [e for e, _ in index.within_radius((10, 10), 1000)] == ["v1"]
    assert len(index) == 1


def test_iterator_is_snapshot_at_call_time():
    index = GeoIndex()
    index.index_location("v1", 0, 0)
    results = index.within_radius((0, 0), 1000)
    index.index_location("v2", 0, 0.001)
    assert [e for e, _ in results] == ["v1"]
