# src/citygeo/etl/pipelines/bench_nearest.py

import logging
import random
import sys
import time
from typing import Optional

from dotenv import load_dotenv

from citygeo.engine import GeoReferenceStore
from citygeo.models.coordinate import Coordinate
from citygeo.models.errors import BulkLoadFailed
from citygeo.utils.env import env_int, env_optional_int
from citygeo.utils.logging_config import setup_logger

logger = logging.getLogger(__name__)


def random_coordinate(rng: random.Random) -> Coordinate:
    return Coordinate(rng.uniform(-180.0, 180.0), rng.uniform(-90.0, 90.0))


def run_benchmark(
    store: GeoReferenceStore,
    queries: int = 500,
    k: int = 500,
    seed: Optional[int] = None,
) -> float:
    """
    Issue `queries` sequential nearest_k lookups from random points.

    Returns:
        Elapsed wall-clock seconds for the query loop only.
    """
    rng = random.Random(seed)
    centers = [random_coordinate(rng) for _ in range(queries)]

    returned = 0
    start = time.perf_counter()
    for center in centers:
        returned += len(store.nearest_k(center, k))
    elapsed = time.perf_counter() - start

    logger.info(
        "%d nearest_k queries (k=%d) over %d cities: %.3fs, %d rows returned",
        queries,
        k,
        len(store),
        elapsed,
        returned,
    )
    return elapsed


def main() -> int:
    load_dotenv()
    setup_logger("bench_nearest.log")

    from citygeo.etl.pipelines.load_cities import build_store

    try:
        store = build_store()
    except (BulkLoadFailed, RuntimeError, ValueError) as e:
        logger.error("Load failed: %s", e)
        return 1

    elapsed = run_benchmark(
        store,
        queries=env_int("BENCH_QUERIES", 500, minimum=1),
        k=env_int("BENCH_K", 500, minimum=1),
        seed=env_optional_int("BENCH_SEED"),
    )
    logger.info("elapsed %.3fs", elapsed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
