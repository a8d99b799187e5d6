from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

from citygeo.models.coordinate import Coordinate
from citygeo.models.errors import InvalidCoordinate, InvalidRecord

TEXT_FIELDS = ("country", "city", "accent_city", "region")

# world-cities CSV headers and their snake_case names
_ROW_ALIASES = {
    "id": "id",
    "country": "country",
    "city": "city",
    "accent_city": "accent_city",
    "accentcity": "accent_city",
    "accent city": "accent_city",
    "region": "region",
    "longitude": "longitude",
    "lon": "longitude",
    "latitude": "latitude",
    "lat": "latitude",
}


def _text(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise InvalidRecord(f"{name} must be text, got {value!r}")
    v = value.strip()
    if not v:
        raise InvalidRecord(f"{name} must not be empty")
    return v


def _normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in row.items():
        name = _ROW_ALIASES.get(str(key).strip().lower())
        if name is not None:
            out[name] = value
    missing = [f for f in (*TEXT_FIELDS, "longitude", "latitude") if f not in out]
    if missing:
        raise InvalidRecord(f"row is missing {', '.join(missing)}")
    return out


@dataclass(frozen=True)
class NewCity:
    """A city row that has not been given an id yet."""

    country: str
    city: str
    accent_city: str
    region: str
    location: Coordinate

    def __post_init__(self):
        for name in TEXT_FIELDS:
            object.__setattr__(self, name, _text(getattr(self, name), name))
        if not isinstance(self.location, Coordinate):
            raise InvalidCoordinate(
                f"location must be a Coordinate, got {type(self.location).__name__}"
            )

    @classmethod
    def from_tuple(cls, row: Sequence[Any]) -> "NewCity":
        """(country, city, accent_city, region, longitude, latitude)"""
        if isinstance(row, (str, bytes)) or len(row) != 6:
            raise InvalidRecord(
                "expected (country, city, accent_city, region, longitude, latitude)"
            )
        country, city, accent_city, region, longitude, latitude = row
        return cls(
            country, city, accent_city, region, Coordinate.make(longitude, latitude)
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NewCity":
        r = _normalize_row(row)
        return cls(
            r["country"],
            r["city"],
            r["accent_city"],
            r["region"],
            Coordinate.make(r["longitude"], r["latitude"]),
        )

    def with_location(self, location: Coordinate) -> "NewCity":
        return NewCity(self.country, self.city, self.accent_city, self.region, location)


@dataclass(frozen=True)
class CityRecord:
    id: int
    country: str
    city: str
    accent_city: str
    region: str
    location: Coordinate

    def __post_init__(self):
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise InvalidRecord(f"id must be a positive integer, got {self.id!r}")
        for name in TEXT_FIELDS:
            object.__setattr__(self, name, _text(getattr(self, name), name))
        if not isinstance(self.location, Coordinate):
            raise InvalidCoordinate(
                f"location must be a Coordinate, got {type(self.location).__name__}"
            )

    @classmethod
    def from_new(cls, record_id: int, new: NewCity) -> "CityRecord":
        return cls(
            record_id, new.country, new.city, new.accent_city, new.region, new.location
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CityRecord":
        r = _normalize_row(row)
        if "id" not in r:
            raise InvalidRecord("row is missing id")
        try:
            record_id = int(r["id"])
        except (TypeError, ValueError):
            raise InvalidRecord(f"id must be an integer, got {r['id']!r}") from None
        return cls.from_new(record_id, NewCity.from_row(r))

    def fields(self) -> NewCity:
        return NewCity(self.country, self.city, self.accent_city, self.region, self.location)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "country": self.country,
            "city": self.city,
            "accent_city": self.accent_city,
            "region": self.region,
            "longitude": self.location.longitude,
            "latitude": self.location.latitude,
        }
