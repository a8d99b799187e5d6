"""Tests for the coordinate model and distance math."""
import math
import random

import pytest

from citygeo.models.coordinate import (
    EARTH_RADIUS_M,
    BoundingBox,
    Coordinate,
    bounding_box,
    haversine_distance,
)
from citygeo.models.errors import InvalidCoordinate, InvalidQuery


@pytest.mark.parametrize(
    "lon,lat",
    [(0, 0), (-180, -90), (180, 90), (13.4, 52.52), ("2.35", "48.85")],
)
def test_make_accepts_valid_pairs(lon, lat):
    """Valid pairs construct and sit at distance zero from themselves."""
    c = Coordinate.make(lon, lat)
    assert c.longitude == float(lon)
    assert c.latitude == float(lat)
    assert haversine_distance(c, c) == 0.0


@pytest.mark.parametrize(
    "lon,lat",
    [
        (180.0001, 0),
        (-181, 0),
        (0, 90.5),
        (0, -91),
        (math.nan, 0),
        (0, math.inf),
        ("east", 0),
        (None, 0),
        (True, 0),
    ],
)
def test_make_rejects_bad_pairs(lon, lat):
    with pytest.raises(InvalidCoordinate):
        Coordinate.make(lon, lat)


def test_coordinate_is_immutable():
    c = Coordinate(1.0, 2.0)
    with pytest.raises(AttributeError):
        c.latitude = 3.0


def test_coerce_pairs():
    assert Coordinate.coerce((1, 2)) == Coordinate(1.0, 2.0)
    c = Coordinate(3, 4)
    assert Coordinate.coerce(c) is c
    with pytest.raises(InvalidCoordinate):
        Coordinate.coerce(5)


def test_haversine_known_distance():
    """One degree of latitude at the equator is R * pi / 180 meters."""
    d = haversine_distance(Coordinate(0, 0), Coordinate(0, 1))
    assert d == pytest.approx(EARTH_RADIUS_M * math.pi / 180, rel=1e-12)


def test_haversine_paris_london():
    paris = Coordinate(2.3522, 48.8566)
    london = Coordinate(-0.1276, 51.5072)
    assert haversine_distance(paris, london) == pytest.approx(343_500, rel=0.01)


def test_haversine_is_symmetric():
    rng = random.Random(7)
    for _ in range(500):
        a = Coordinate(rng.uniform(-180, 180), rng.uniform(-90, 90))
        b = Coordinate(rng.uniform(-180, 180), rng.uniform(-90, 90))
        assert haversine_distance(a, b) == pytest.approx(
            haversine_distance(b, a), rel=1e-6
        )


def test_haversine_across_antimeridian():
    a = Coordinate(179.5, 0)
    b = Coordinate(-179.5, 0)
    assert haversine_distance(a, b) == pytest.approx(
        EARTH_RADIUS_M * math.pi / 180, rel=1e-9
    )


def test_haversine_antimeridian_edges_coincide():
    """-180 and 180 name the same meridian."""
    assert haversine_distance(Coordinate(-180, 0), Coordinate(180, 0)) == 0.0
    assert haversine_distance(Coordinate(180, 45), Coordinate(-180, 45)) == 0.0
    assert haversine_distance(Coordinate(-170, 0), Coordinate(170, 0)) == pytest.approx(
        EARTH_RADIUS_M * math.radians(20), rel=1e-9
    )


def test_bounding_box_validation():
    with pytest.raises(InvalidCoordinate):
        BoundingBox(0, 10, 1, 5)
    with pytest.raises(InvalidCoordinate):
        BoundingBox(-200, 0, 0, 1)


def test_crossing_box_parts_and_contains():
    box = BoundingBox(170, -10, -170, 10)
    assert box.crosses_antimeridian
    assert box.parts() == (
        BoundingBox(170, -10, 180, 10),
        BoundingBox(-180, -10, -170, 10),
    )
    assert box.contains(Coordinate(175, 0))
    assert box.contains(Coordinate(-175, 0))
    assert not box.contains(Coordinate(0, 0))
    assert box.intersects(BoundingBox(-175, -1, -172, 1))
    assert not box.intersects(BoundingBox(0, -1, 10, 1))


def test_around():
    box = BoundingBox.around([Coordinate(1, 2), Coordinate(-3, 4), Coordinate(5, -6)])
    assert box == BoundingBox(-3, -6, 5, 4)


def _circle(center, radius, steps=720):
    """Points on the circle of `radius` meters around center."""
    lat1 = math.radians(center.latitude)
    lon1 = math.radians(center.longitude)
    d = radius / EARTH_RADIUS_M
    for i in range(steps):
        bearing = 2 * math.pi * i / steps
        lat2 = math.asin(
            math.sin(lat1) * math.cos(d)
            + math.cos(lat1) * math.sin(d) * math.cos(bearing)
        )
        lon2 = lon1 + math.atan2(
            math.sin(bearing) * math.sin(d) * math.cos(lat1),
            math.cos(d) - math.sin(lat1) * math.sin(lat2),
        )
        lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
        yield Coordinate(lon_deg, math.degrees(lat2))


@pytest.mark.parametrize(
    "lon,lat,radius",
    [
        (0, 0, 150_000),
        (10, 60, 2_000_000),
        (-45, 75, 800_000),
        (120, -80, 500_000),
        (179.9, 10, 100_000),
        (-179.5, -30, 300_000),
    ],
)
def test_bounding_box_holds_the_whole_circle(lon, lat, radius):
    """Every point on the circle lies inside the box, including at high latitude."""
    center = Coordinate(lon, lat)
    box = bounding_box(center, radius)
    for point in _circle(center, radius):
        assert box.contains(point), point


def test_bounding_box_over_a_pole_spans_all_longitudes():
    box = bounding_box(Coordinate(30, 89), 300_000)
    assert (box.west, box.east, box.north) == (-180.0, 180.0, 90.0)


def test_bounding_box_crossing_antimeridian():
    box = bounding_box(Coordinate(179.9, 0), 100_000)
    assert box.crosses_antimeridian
    assert box.contains(Coordinate(-179.5, 0))


def test_bounding_box_beyond_half_globe_is_world():
    assert bounding_box(Coordinate(0, 0), 2 * math.pi * EARTH_RADIUS_M) == BoundingBox.world()


@pytest.mark.parametrize("radius", [-1, math.nan, math.inf, "far"])
def test_bounding_box_rejects_bad_radius(radius):
    with pytest.raises(InvalidQuery):
        bounding_box(Coordinate(0, 0), radius)
