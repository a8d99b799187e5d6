"""
GeoReferenceStore: the record store and the spatial index behind one API.

Both halves always hold the same ids with the same coordinates. Readers
share a read lock; writers are serialised by a mutex and take the write
lock only while they touch live state. Bulk loads and index rebuilds
prepare a new store/index pair off to the side and swap both references
in one step, so a reader sees either the old pair or the new one.
"""

import logging
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, Tuple

from citygeo.engine.locks import ReadWriteLock
from citygeo.index.rtree import DEFAULT_FANOUT, MAX_FANOUT, MIN_FANOUT, SpatialIndex
from citygeo.models.city import CityRecord, NewCity
from citygeo.models.coordinate import BoundingBox, Coordinate
from citygeo.models.errors import InvalidRecord, NotFound
from citygeo.store.record_store import BulkItem, RecordStore
from citygeo.utils.env import env_int

logger = logging.getLogger(__name__)


def _fanout_from_env() -> int:
    return env_int("INDEX_FANOUT", DEFAULT_FANOUT, MIN_FANOUT, MAX_FANOUT)


def _as_new_city(value: Any) -> NewCity:
    if isinstance(value, NewCity):
        return value
    if isinstance(value, Mapping):
        return NewCity.from_row(value)
    if isinstance(value, (tuple, list)):
        return NewCity.from_tuple(value)
    raise InvalidRecord(f"cannot read a {type(value).__name__} as a city")


class GeoReferenceStore:
    def __init__(self, fanout: Optional[int] = None):
        self._fanout = fanout if fanout is not None else _fanout_from_env()
        self._records = RecordStore()
        self._index = SpatialIndex(self._fanout)
        self._lock = ReadWriteLock()
        self._writer = threading.Lock()

    @property
    def fanout(self) -> int:
        return self._fanout

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)

    # ---- bulk writes ------------------------------------------------------

    def bulk_load(self, items: Sequence[BulkItem]) -> List[int]:
        """
        Load a batch and return the ids in input order.

        Raises BulkLoadFailed (with the offending position) when any item
        is invalid or carries an id already in use; in that case nothing
        from the batch becomes visible.
        """
        items = list(items)
        with self._writer:
            started = time.perf_counter()
            staged = self._records.copy()
            ids = staged.bulk_load(items)
            index = SpatialIndex.bulk_build(
                ((r.id, r.location) for r in staged), self._fanout
            )
            with self._lock.write():
                self._records, self._index = staged, index
        logger.info(
            "Bulk loaded %d cities in %.3fs (store size: %d, index height: %d)",
            len(ids),
            time.perf_counter() - started,
            len(staged),
            index.height,
        )
        return ids

    def bulk_load_batches(
        self,
        batches: Iterable[Sequence[BulkItem]],
        on_batch: Optional[Callable[[int, List[int]], None]] = None,
    ) -> List[int]:
        """
        Load a stream of batches with a single index build at the end.

        Each batch is still all-or-nothing: when one raises BulkLoadFailed,
        the batches before it are committed, the failing one leaves no
        trace, and the error propagates. `on_batch(number, ids)` is called
        after each batch is staged (numbers start at 1).
        """
        loaded: List[int] = []
        with self._writer:
            started = time.perf_counter()
            staged = self._records.copy()
            try:
                for number, batch in enumerate(batches, 1):
                    ids = staged.bulk_load(list(batch))
                    loaded.extend(ids)
                    if on_batch is not None:
                        on_batch(number, ids)
            finally:
                index = SpatialIndex.bulk_build(
                    ((r.id, r.location) for r in staged), self._fanout
                )
                with self._lock.write():
                    self._records, self._index = staged, index
                logger.info(
                    "Bulk loaded %d cities in %.3fs (store size: %d, index height: %d)",
                    len(loaded),
                    time.perf_counter() - started,
                    len(staged),
                    index.height,
                )
        return loaded

    def rebuild_index(self) -> None:
        """Repack the spatial index from the current records."""
        with self._writer:
            started = time.perf_counter()
            records = self._records
            index = SpatialIndex.bulk_build(
                ((r.id, r.location) for r in records), self._fanout
            )
            with self._lock.write():
                self._index = index
        logger.info(
            "Rebuilt index over %d cities in %.3fs (height: %d)",
            len(index),
            time.perf_counter() - started,
            index.height,
        )

    def reset(self) -> None:
        """Drop every record and restart id assignment at 1."""
        with self._writer:
            records = RecordStore()
            index = SpatialIndex(self._fanout)
            with self._lock.write():
                self._records, self._index = records, index
        logger.info("Store reset")

    # ---- single writes ----------------------------------------------------

    def insert_record(self, new: Any) -> int:
        """
        Insert one city (NewCity, row mapping or 6-tuple); returns its id.

        If the index rejects the entry the record is withdrawn and its id
        handed out again by the next insert.
        """
        new = _as_new_city(new)
        with self._writer, self._lock.write():
            record_id = self._records.insert(new)
            try:
                self._index.insert(record_id, new.location)
            except Exception:
                self._records.retract(record_id)
                raise
        logger.debug("Inserted city %d (%s)", record_id, new.city)
        return record_id

    def update_location(self, record_id: int, location: Any) -> None:
        location = Coordinate.coerce(location)
        with self._writer, self._lock.write():
            current = self._records.get(record_id)
            self._replace(current, current.fields().with_location(location))
        logger.debug("Moved city %d to %s", record_id, location.as_tuple())

    def update_record(self, record_id: int, new: Any) -> None:
        """Replace all non-id fields of a record."""
        new = _as_new_city(new)
        with self._writer, self._lock.write():
            current = self._records.get(record_id)
            self._replace(current, new)
        logger.debug("Updated city %d", record_id)

    def _replace(self, current: CityRecord, new: NewCity) -> None:
        # caller holds the write lock
        record_id = current.id
        self._records.update(record_id, new)
        if new.location == current.location:
            return
        try:
            self._index.delete(record_id)
        except Exception:
            self._records.update(record_id, current.fields())
            raise
        try:
            self._index.insert(record_id, new.location)
        except Exception:
            self._index.insert(record_id, current.location)
            self._records.update(record_id, current.fields())
            raise

    def delete_record(self, record_id: int) -> None:
        with self._writer, self._lock.write():
            removed = self._records.delete(record_id)
            try:
                self._index.delete(record_id)
            except Exception:
                self._records.insert_with_id(removed)
                raise
        logger.debug("Deleted city %d", record_id)

    # ---- reads --------------------------------------------------------------

    def get_record(self, record_id: int) -> CityRecord:
        with self._lock.read():
            return self._records.get(record_id)

    def records(self) -> List[CityRecord]:
        """Snapshot of every record, ordered by id."""
        with self._lock.read():
            return sorted(self._records, key=lambda r: r.id)

    def radius_search(self, center: Any, radius_meters: float) -> List[CityRecord]:
        """Records within `radius_meters` of `center`, nearest first."""
        return [r for r, _ in self.radius_search_with_distance(center, radius_meters)]

    def radius_search_with_distance(
        self, center: Any, radius_meters: float
    ) -> List[Tuple[CityRecord, float]]:
        center = Coordinate.coerce(center)
        with self._lock.read():
            hits = self._index.within(center, radius_meters)
            return [(self._materialize(i), d) for i, d in hits]

    def nearest_k(self, center: Any, k: int) -> List[CityRecord]:
        """Up to k records closest to `center`, nearest first, ties by id."""
        return [r for r, _ in self.nearest_k_with_distance(center, k)]

    def nearest_k_with_distance(
        self, center: Any, k: int
    ) -> List[Tuple[CityRecord, float]]:
        center = Coordinate.coerce(center)
        with self._lock.read():
            hits = self._index.nearest(center, k)
            return [(self._materialize(i), d) for i, d in hits]

    def bounding_box_search(self, box: BoundingBox) -> Set[CityRecord]:
        if not isinstance(box, BoundingBox):
            box = BoundingBox(*box)
        with self._lock.read():
            return {self._materialize(i) for i in self._index.bounding_box_query(box)}

    def _materialize(self, record_id: int) -> CityRecord:
        # caller holds the read lock
        try:
            return self._records.get(record_id)
        except NotFound:
            raise RuntimeError(
                f"index returned id {record_id} unknown to the store"
            ) from None

    def is_consistent(self) -> bool:
        """True when both halves hold the same ids at the same coordinates."""
        with self._lock.read():
            if self._records.ids() != self._index.ids():
                return False
            return all(
                self._index.coordinate_of(r.id) == r.location for r in self._records
            )
