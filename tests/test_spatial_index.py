"""Tests for the R-tree: structure, box/radius queries and k-NN against brute force."""
import random

import pytest

from citygeo.index.rtree import SpatialIndex
from citygeo.models.coordinate import BoundingBox, Coordinate, haversine_distance
from citygeo.models.errors import DuplicateId, InvalidQuery, NotFound


def _brute_nearest(points, center, k):
    ranked = sorted(
        ((haversine_distance(center, c), i) for i, c in points.items()),
    )
    return [(i, d) for d, i in ranked[:k]]


def _brute_radius(points, center, radius):
    return {i for i, c in points.items() if haversine_distance(center, c) <= radius}


@pytest.fixture
def points(random_points):
    return {i: c for i, c in enumerate(random_points, 1)}


@pytest.fixture(params=["bulk", "insert"])
def index(request, points):
    """The same data set built both ways; queries must not depend on tree shape."""
    if request.param == "bulk":
        idx = SpatialIndex.bulk_build(points.items(), fanout=8)
    else:
        idx = SpatialIndex(fanout=8)
        for i, c in points.items():
            idx.insert(i, c)
    idx.validate()
    return idx


def test_empty_index_answers_empty():
    idx = SpatialIndex()
    assert idx.nearest(Coordinate(0, 0), 5) == []
    assert idx.radius_query(Coordinate(0, 0), 1e6) == set()
    assert idx.bounding_box_query(BoundingBox.world()) == set()
    assert idx.height == 0
    idx.validate()


def test_fanout_bounds():
    for bad in (3, 65, 8.0):
        with pytest.raises(ValueError):
            SpatialIndex(fanout=bad)


def test_bulk_build_is_balanced_and_shallow(points):
    idx = SpatialIndex.bulk_build(points.items(), fanout=16)
    idx.validate()
    assert len(idx) == len(points)
    # 600 points, 16 per node: 38 leaves, 3 parents, 1 root
    assert idx.height == 3


def test_bulk_build_rejects_duplicate_ids():
    with pytest.raises(DuplicateId):
        SpatialIndex.bulk_build([(1, Coordinate(0, 0)), (1, Coordinate(1, 1))])


def test_insert_rejects_duplicate_ids():
    idx = SpatialIndex()
    idx.insert(1, Coordinate(0, 0))
    with pytest.raises(DuplicateId):
        idx.insert(1, Coordinate(5, 5))


def test_inserts_split_and_stay_valid():
    idx = SpatialIndex(fanout=4)
    rng = random.Random(1)
    for i in range(1, 301):
        idx.insert(i, Coordinate(rng.uniform(-10, 10), rng.uniform(-10, 10)))
        if i % 25 == 0:
            idx.validate()
    assert idx.height > 2
    assert len(idx) == 300


def test_collinear_points_stay_valid():
    """Zero-area boxes along one meridian still split and query correctly."""
    idx = SpatialIndex(fanout=4)
    for i in range(1, 101):
        idx.insert(i, Coordinate(0, -50 + i * 0.5))
    idx.validate()
    # latitudes -2.0 .. 0.0 belong to ids 96 .. 100
    assert idx.bounding_box_query(BoundingBox(-1, -2, 1, 5)) == {96, 97, 98, 99, 100}
    got = [i for i, _ in idx.nearest(Coordinate(0, 0), 3)]
    assert got == [100, 99, 98]


def test_box_query_matches_brute_force(index, points):
    rng = random.Random(3)
    for _ in range(40):
        west, east = sorted((rng.uniform(-180, 180), rng.uniform(-180, 180)))
        south, north = sorted((rng.uniform(-90, 90), rng.uniform(-90, 90)))
        box = BoundingBox(west, south, east, north)
        expected = {i for i, c in points.items() if box.contains(c)}
        assert index.bounding_box_query(box) == expected


def test_box_query_across_antimeridian(index, points):
    box = BoundingBox(150, -60, -150, 60)
    expected = {i for i, c in points.items() if box.contains(c)}
    assert expected
    assert index.bounding_box_query(box) == expected


@pytest.mark.parametrize("radius", [50_000, 500_000, 2_500_000, 9_000_000])
def test_radius_query_matches_brute_force(index, points, radius):
    rng = random.Random(radius)
    centers = [Coordinate(rng.uniform(-180, 180), rng.uniform(-90, 90)) for _ in range(15)]
    centers += [Coordinate(179.9, 0), Coordinate(-179.9, 45), Coordinate(0, 89.9), Coordinate(0, -90)]
    for center in centers:
        assert index.radius_query(center, radius) == _brute_radius(points, center, radius)


def test_within_is_sorted_by_distance_then_id(index):
    hits = index.within(Coordinate(10, 10), 3_000_000)
    assert hits == sorted(hits, key=lambda h: (h[1], h[0]))


@pytest.mark.parametrize("k", [1, 7, 50])
def test_nearest_matches_brute_force(index, points, k):
    rng = random.Random(k)
    centers = [Coordinate(rng.uniform(-180, 180), rng.uniform(-90, 90)) for _ in range(20)]
    centers += [Coordinate(180, 0), Coordinate(-180, -89), Coordinate(0, 90)]
    for center in centers:
        got = index.nearest(center, k)
        want = _brute_nearest(points, center, k)
        assert [i for i, _ in got] == [i for i, _ in want]
        assert [d for _, d in got] == pytest.approx([d for _, d in want])


def test_nearest_more_than_size_returns_everything(index, points):
    got = index.nearest(Coordinate(0, 0), len(points) + 10)
    assert len(got) == len(points)
    distances = [d for _, d in got]
    assert distances == sorted(distances)


def test_nearest_breaks_ties_by_id():
    idx = SpatialIndex(fanout=4)
    # four points at the same distance from the origin, one duplicate location
    for i, c in [(9, (1, 0)), (4, (0, 1)), (7, (-1, 0)), (2, (0, -1)), (5, (1, 0))]:
        idx.insert(i, Coordinate(*c))
    got = [i for i, _ in idx.nearest(Coordinate(0, 0), 5)]
    assert got == [2, 4, 5, 7, 9]


def test_nearest_rejects_bad_k():
    idx = SpatialIndex()
    for k in (0, -1, 1.5, True):
        with pytest.raises(InvalidQuery):
            idx.nearest(Coordinate(0, 0), k)


def test_delete_removes_every_trace(index, points):
    rng = random.Random(11)
    doomed = rng.sample(sorted(points), 400)
    for n, record_id in enumerate(doomed, 1):
        index.delete(record_id)
        if n % 50 == 0:
            index.validate()
    index.validate()
    survivors = {i: c for i, c in points.items() if i not in set(doomed)}
    assert index.ids() == set(survivors)
    assert index.bounding_box_query(BoundingBox.world()) == set(survivors)
    center = Coordinate(0, 0)
    assert [i for i, _ in index.nearest(center, 25)] == [
        i for i, _ in _brute_nearest(survivors, center, 25)
    ]


def test_delete_everything_then_reuse(points):
    idx = SpatialIndex.bulk_build(list(points.items())[:50], fanout=4)
    for i in list(points)[:50]:
        idx.delete(i)
    assert len(idx) == 0 and idx.height == 0
    idx.validate()
    idx.insert(1, Coordinate(3, 3))
    assert idx.nearest(Coordinate(0, 0), 1)[0][0] == 1


def test_delete_unknown_id():
    idx = SpatialIndex()
    with pytest.raises(NotFound):
        idx.delete(42)


def test_coordinate_of():
    idx = SpatialIndex.bulk_build([(3, Coordinate(1, 2))])
    assert idx.coordinate_of(3) == Coordinate(1, 2)
    assert 3 in idx
    with pytest.raises(NotFound):
        idx.coordinate_of(4)
