"""In-memory gazetteer of world cities with an R-tree over their WGS84 locations."""

from citygeo.engine import GeoReferenceStore
from citygeo.index import SpatialIndex
from citygeo.models import (
    BoundingBox,
    BulkLoadFailed,
    CityGeoError,
    CityRecord,
    Coordinate,
    DuplicateId,
    InvalidCoordinate,
    InvalidQuery,
    InvalidRecord,
    NewCity,
    NotFound,
    bounding_box,
    haversine_distance,
)
from citygeo.store import RecordStore

__version__ = "0.1.0"

__all__ = [
    "GeoReferenceStore",
    "SpatialIndex",
    "RecordStore",
    "BoundingBox",
    "CityRecord",
    "Coordinate",
    "NewCity",
    "bounding_box",
    "haversine_distance",
    "BulkLoadFailed",
    "CityGeoError",
    "DuplicateId",
    "InvalidCoordinate",
    "InvalidQuery",
    "InvalidRecord",
    "NotFound",
]
