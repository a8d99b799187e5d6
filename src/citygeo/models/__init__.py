from .coordinate import (
    EARTH_RADIUS_M,
    BoundingBox,
    Coordinate,
    bounding_box,
    haversine_distance,
)
from .city import CityRecord, NewCity
from .errors import (
    BulkLoadFailed,
    CityGeoError,
    DuplicateId,
    InvalidCoordinate,
    InvalidQuery,
    InvalidRecord,
    NotFound,
)

__all__ = [
    "EARTH_RADIUS_M",
    "BoundingBox",
    "Coordinate",
    "bounding_box",
    "haversine_distance",
    "CityRecord",
    "NewCity",
    "BulkLoadFailed",
    "CityGeoError",
    "DuplicateId",
    "InvalidCoordinate",
    "InvalidQuery",
    "InvalidRecord",
    "NotFound",
]
