"""
WGS84 (SRID 4326) point coordinates and the distance math built on them.

Everything here is pure Python on top of `math`; longitudes and latitudes
are decimal degrees, distances are meters.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from citygeo.models.errors import InvalidCoordinate, InvalidQuery

EARTH_RADIUS_M = 6_371_008.8

# widening applied to every radius box, in degrees (~1 mm)
_BOX_PAD_DEG = 1e-8


def _as_degrees(value: Any, name: str, limit: float) -> float:
    if isinstance(value, bool):
        raise InvalidCoordinate(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinate(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(v):
        raise InvalidCoordinate(f"{name} must be finite, got {v}")
    if not -limit <= v <= limit:
        raise InvalidCoordinate(f"{name} {v} outside [-{limit:g}, {limit:g}]")
    return v


@dataclass(frozen=True)
class Coordinate:
    """A validated (longitude, latitude) pair."""

    longitude: float
    latitude: float

    def __post_init__(self):
        object.__setattr__(
            self, "longitude", _as_degrees(self.longitude, "longitude", 180.0)
        )
        object.__setattr__(
            self, "latitude", _as_degrees(self.latitude, "latitude", 90.0)
        )

    @classmethod
    def make(cls, longitude: Any, latitude: Any) -> "Coordinate":
        return cls(longitude, latitude)

    @classmethod
    def coerce(cls, value: Any) -> "Coordinate":
        """Accept a Coordinate or a (longitude, latitude) pair."""
        if isinstance(value, Coordinate):
            return value
        try:
            longitude, latitude = value
        except (TypeError, ValueError):
            raise InvalidCoordinate(
                f"expected Coordinate or (longitude, latitude), got {value!r}"
            ) from None
        return cls(longitude, latitude)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.longitude, self.latitude)


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two coordinates."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    # wrapped into [-180, 180] so that +-180 meet exactly
    dlon = (b.longitude - a.longitude) % 360.0
    if dlon > 180.0:
        dlon -= 360.0
    dlon = math.radians(dlon)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in degrees.

    A box whose `west` edge is greater than its `east` edge crosses the
    antimeridian: it covers [west, 180] and [-180, east].
    """

    west: float
    south: float
    east: float
    north: float

    def __post_init__(self):
        object.__setattr__(self, "west", _as_degrees(self.west, "west", 180.0))
        object.__setattr__(self, "east", _as_degrees(self.east, "east", 180.0))
        object.__setattr__(self, "south", _as_degrees(self.south, "south", 90.0))
        object.__setattr__(self, "north", _as_degrees(self.north, "north", 90.0))
        if self.south > self.north:
            raise InvalidCoordinate(
                f"south {self.south} is north of north {self.north}"
            )

    @classmethod
    def world(cls) -> "BoundingBox":
        return cls(-180.0, -90.0, 180.0, 90.0)

    @classmethod
    def around(cls, coordinates: Iterable[Coordinate]) -> "BoundingBox":
        """Smallest non-crossing box holding all coordinates."""
        coords = list(coordinates)
        if not coords:
            raise InvalidCoordinate("cannot bound an empty set of coordinates")
        return cls(
            min(c.longitude for c in coords),
            min(c.latitude for c in coords),
            max(c.longitude for c in coords),
            max(c.latitude for c in coords),
        )

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def parts(self) -> Tuple["BoundingBox", ...]:
        if not self.crosses_antimeridian:
            return (self,)
        return (
            BoundingBox(self.west, self.south, 180.0, self.north),
            BoundingBox(-180.0, self.south, self.east, self.north),
        )

    def contains(self, coordinate: Coordinate) -> bool:
        if not self.south <= coordinate.latitude <= self.north:
            return False
        lon = coordinate.longitude
        if self.crosses_antimeridian:
            return lon >= self.west or lon <= self.east
        return self.west <= lon <= self.east

    def intersects(self, other: "BoundingBox") -> bool:
        return any(
            a.west <= b.east
            and b.west <= a.east
            and a.south <= b.north
            and b.south <= a.north
            for a in self.parts()
            for b in other.parts()
        )


def bounding_box(center: Coordinate, radius_meters: float) -> BoundingBox:
    """
    Conservative box around the circle of `radius_meters` about `center`.

    The longitude half-width is the exact extent of a spherical cap,
    asin(sin(d) / cos(lat)), which grows with latitude faster than d / cos(lat).
    A cap that reaches a pole spans every longitude.
    """
    try:
        radius = float(radius_meters)
    except (TypeError, ValueError):
        raise InvalidQuery(f"radius must be a number, got {radius_meters!r}") from None
    if not math.isfinite(radius) or radius < 0:
        raise InvalidQuery(f"radius must be finite and non-negative, got {radius}")

    angular = radius / EARTH_RADIUS_M
    if angular >= math.pi:
        return BoundingBox.world()

    dlat = math.degrees(angular) + _BOX_PAD_DEG
    south = max(-90.0, center.latitude - dlat)
    north = min(90.0, center.latitude + dlat)
    if south <= -90.0 or north >= 90.0:
        return BoundingBox(-180.0, south, 180.0, north)

    ratio = math.sin(angular) / math.cos(math.radians(center.latitude))
    if ratio >= 1.0:
        return BoundingBox(-180.0, south, 180.0, north)
    dlon = math.degrees(math.asin(ratio)) + _BOX_PAD_DEG
    if dlon >= 180.0:
        return BoundingBox(-180.0, south, 180.0, north)

    west = center.longitude - dlon
    east = center.longitude + dlon
    if west < -180.0:
        west += 360.0
    if east > 180.0:
        east -= 360.0
    return BoundingBox(west, south, east, north)
