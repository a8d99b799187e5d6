# src/citygeo/etl/pipelines/load_cities.py

import logging
import sys
from typing import Iterable, List, Optional, Sequence

from dotenv import load_dotenv

from citygeo.engine import GeoReferenceStore
from citygeo.models.errors import BulkLoadFailed
from citygeo.utils.env import env_choice, env_int, env_path
from citygeo.utils.logging_config import setup_logger

logger = logging.getLogger(__name__)

DEFAULT_CSV_PATH = "data/cities.txt.zip"


def load_cities(store: GeoReferenceStore, batches: Iterable[Sequence]) -> int:
    """
    Bulk-load every batch into the store, one atomic load per batch.

    All batches are staged together and the spatial index is packed once
    at the end. A rejected batch stops the run: earlier batches stay
    loaded, the failing one leaves no trace, and BulkLoadFailed
    propagates with the position inside that batch.
    """
    progress = {"batches": 0, "total": 0}

    def log_batch(number: int, ids: List[int]) -> None:
        progress["batches"] = number
        progress["total"] += len(ids)
        logger.info("Loaded %d cities (cumulative: %d)", len(ids), progress["total"])

    try:
        ids = store.bulk_load_batches(batches, on_batch=log_batch)
    except BulkLoadFailed as e:
        logger.error(
            "Batch %d rejected at row %d (%d rows loaded before it): %s",
            progress["batches"] + 1,
            e.index,
            progress["total"],
            e.cause,
        )
        raise
    return len(ids)


def _csv_batches(batch_size: int):
    from citygeo.etl.extract.read_city_csv import iter_city_rows

    path = env_path("CITY_CSV_PATH", DEFAULT_CSV_PATH)
    if not path.exists():
        raise RuntimeError(
            f"can't open cities file, expected location {path} (set CITY_CSV_PATH)"
        )
    logger.info("Reading cities from %s", path)
    return iter_city_rows(path, batch_size=batch_size)


def _postgis_batches(batch_size: int):
    from citygeo.etl.extract.postgis_source import (
        get_engine,
        iter_city_batches,
        masked_dsn_for_log,
    )

    logger.info("Reading cities from Postgres: %s", masked_dsn_for_log())
    return iter_city_batches(get_engine(), batch_size=batch_size)


def build_store(store: Optional[GeoReferenceStore] = None) -> GeoReferenceStore:
    """Create (or fill) a store from the source named by CITY_SOURCE."""
    load_dotenv()
    store = store if store is not None else GeoReferenceStore()
    batch_size = env_int("CITY_BATCH_SIZE", 10000, minimum=1)
    source = env_choice("CITY_SOURCE", ("csv", "postgis"), "csv")

    if source == "postgis":
        batches = _postgis_batches(batch_size)
    else:
        batches = _csv_batches(batch_size)

    total = load_cities(store, batches)
    logger.info("Finished loading cities. Total: %d", total)
    return store


def main() -> int:
    setup_logger("load_cities.log")
    try:
        build_store()
    except (BulkLoadFailed, RuntimeError, ValueError) as e:
        logger.error("Load failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
