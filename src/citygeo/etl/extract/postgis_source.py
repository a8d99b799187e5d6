# src/citygeo/etl/extract/postgis_source.py

import os
from typing import Any, Dict, Iterator, List, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url

load_dotenv()

# the provisioned table: location is geometry(Point, 4326)
CITIES_QUERY = """
    SELECT id, country, city, accent_city, region,
           ST_X(location) AS longitude,
           ST_Y(location) AS latitude
    FROM cities
    ORDER BY id
"""


def _dsn() -> Optional[str]:
    return os.getenv("POSTGRES_DSN") or os.getenv("DATABASE_URL")


def get_engine() -> Engine:
    dsn = _dsn()
    if not dsn:
        raise RuntimeError("Set POSTGRES_DSN or DATABASE_URL")
    return create_engine(dsn, future=True)


def masked_dsn_for_log() -> str:
    dsn = _dsn()
    return str(make_url(dsn).set(password="***")) if dsn else "<unset>"


def iter_city_batches(
    engine: Engine,
    batch_size: int = 10000,
    query: str = CITIES_QUERY,
) -> Iterator[List[Dict[str, Any]]]:
    """
    Stream rows of the PostGIS `cities` table as id-preserving batches.

    Each row is a dict with id, country, city, accent_city, region,
    longitude and latitude, ready for `GeoReferenceStore.bulk_load`.
    `query` can be overridden for tables laid out differently.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    with engine.connect() as conn:
        result = conn.execution_options(stream_results=True).execute(text(query))
        rows = result.mappings()
        while True:
            batch = [dict(r) for r in rows.fetchmany(batch_size)]
            if not batch:
                break
            yield batch
