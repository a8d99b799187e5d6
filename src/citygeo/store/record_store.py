import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Sequence, Union

from citygeo.models.city import CityRecord, NewCity
from citygeo.models.errors import (
    BulkLoadFailed,
    CityGeoError,
    DuplicateId,
    InvalidRecord,
    NotFound,
)

logger = logging.getLogger(__name__)

BulkItem = Union[NewCity, CityRecord, Mapping, Sequence[Any]]


def _coerce_item(item: Any) -> Union[NewCity, CityRecord]:
    """Turn one bulk-load item into a NewCity or an id-carrying CityRecord."""
    if isinstance(item, (NewCity, CityRecord)):
        return item
    if isinstance(item, Mapping):
        if item.get("id") is not None:
            return CityRecord.from_row(item)
        return NewCity.from_row(item)
    if isinstance(item, (tuple, list)):
        return NewCity.from_tuple(item)
    raise InvalidRecord(f"cannot load a {type(item).__name__} as a city")


class RecordStore:
    """
    Canonical city records keyed by integer id.

    Ids come from a counter owned by the store: it only moves forward, so
    an id is never handed out twice, even after the record is deleted.
    The store knows nothing about the spatial index.
    """

    def __init__(self):
        self._records: Dict[int, CityRecord] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[CityRecord]:
        return iter(self._records.values())

    @property
    def next_id(self) -> int:
        return self._next_id

    def ids(self) -> frozenset:
        return frozenset(self._records)

    def insert(self, new: NewCity) -> int:
        if not isinstance(new, NewCity):
            raise InvalidRecord(f"expected NewCity, got {type(new).__name__}")
        record_id = self._next_id
        self._records[record_id] = CityRecord.from_new(record_id, new)
        self._next_id += 1
        return record_id

    def insert_with_id(self, record: CityRecord) -> None:
        if not isinstance(record, CityRecord):
            raise InvalidRecord(f"expected CityRecord, got {type(record).__name__}")
        if record.id in self._records:
            raise DuplicateId(record.id)
        self._records[record.id] = record
        self._next_id = max(self._next_id, record.id + 1)

    def get(self, record_id: int) -> CityRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise NotFound(record_id) from None

    def update(self, record_id: int, new: NewCity) -> CityRecord:
        """Replace every non-id field; returns the record that was replaced."""
        if not isinstance(new, NewCity):
            raise InvalidRecord(f"expected NewCity, got {type(new).__name__}")
        previous = self.get(record_id)
        self._records[record_id] = CityRecord.from_new(record_id, new)
        return previous

    def delete(self, record_id: int) -> CityRecord:
        try:
            return self._records.pop(record_id)
        except KeyError:
            raise NotFound(record_id) from None

    def retract(self, record_id: int) -> None:
        """Undo the `insert` that just returned `record_id`, id included."""
        self.delete(record_id)
        if record_id == self._next_id - 1:
            self._next_id = record_id

    def bulk_load(self, items: Sequence[BulkItem]) -> List[int]:
        """
        Insert a batch; ids are returned in input order.

        Items may be NewCity, CityRecord (keeps its id), a row mapping or a
        (country, city, accent_city, region, longitude, latitude) tuple.
        The batch is staged first and only committed when every item is
        valid; otherwise BulkLoadFailed is raised and the store is untouched.
        """
        staged: List[Union[NewCity, CityRecord]] = []
        explicit: Dict[int, int] = {}
        for position, item in enumerate(items):
            try:
                city = _coerce_item(item)
                if isinstance(city, CityRecord):
                    if city.id in self._records or city.id in explicit:
                        raise DuplicateId(city.id)
                    explicit[city.id] = position
            except CityGeoError as e:
                logger.warning("Rejected bulk load at item %d: %s", position, e)
                raise BulkLoadFailed(position, e) from e
            staged.append(city)

        next_id = max([self._next_id, *(i + 1 for i in explicit)])
        records: Dict[int, CityRecord] = {}
        ids: List[int] = []
        for city in staged:
            if isinstance(city, CityRecord):
                record = city
            else:
                record = CityRecord.from_new(next_id, city)
                next_id += 1
            records[record.id] = record
            ids.append(record.id)

        self._records.update(records)
        self._next_id = next_id
        return ids

    def copy(self) -> "RecordStore":
        clone = RecordStore()
        clone._records = dict(self._records)
        clone._next_id = self._next_id
        return clone

    def reset(self) -> None:
        self._records = {}
        self._next_id = 1
