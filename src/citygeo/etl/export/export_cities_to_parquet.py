# src/citygeo/etl/export/export_cities_to_parquet.py
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from citygeo.engine import GeoReferenceStore
from citygeo.models.errors import BulkLoadFailed
from citygeo.utils.env import env_path
from citygeo.utils.logging_config import setup_logger
from citygeo.utils.parquet_io import CITY_SCHEMA, write_city_snapshot

logger = logging.getLogger(__name__)


def cities_frame(store: GeoReferenceStore) -> pd.DataFrame:
    """Snapshot of the store as a DataFrame, one row per city, ordered by id."""
    rows = [r.to_row() for r in store.records()]
    return pd.DataFrame(rows, columns=list(CITY_SCHEMA))


def export_cities(store: GeoReferenceStore, base_dir: str | Path) -> Path:
    """Write the snapshot to base_dir/cities.parquet and return the path."""
    return write_city_snapshot(cities_frame(store), base_dir)


def main() -> int:
    setup_logger("export_cities.log")

    from citygeo.etl.pipelines.load_cities import build_store

    try:
        store = build_store()
    except (BulkLoadFailed, RuntimeError, ValueError) as e:
        logger.error("Load failed: %s", e)
        return 1

    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    out_dir = env_path("PROCESSED_DIR", "data/processed") / "cities" / run_id
    out_path = export_cities(store, out_dir)
    logger.info("Wrote %d rows to %s", len(store), out_path)
    print(f"[export] Wrote {len(store)} rows → {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
