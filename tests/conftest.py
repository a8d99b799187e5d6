"""Shared fixtures for citygeo tests."""
import random

import pytest

from citygeo import Coordinate, GeoReferenceStore, NewCity


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep log files and env-driven settings inside the test's tmp dir."""
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "INDEX_FANOUT",
        "CITY_SOURCE",
        "CITY_CSV_PATH",
        "CITY_BATCH_SIZE",
        "LOG_LEVEL",
        "PROCESSED_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


def city(name, lon, lat, country="xx", region="01"):
    return NewCity(country, name.lower(), name, region, Coordinate(lon, lat))


@pytest.fixture
def make_city():
    return city


@pytest.fixture
def store():
    return GeoReferenceStore(fanout=8)


@pytest.fixture
def abc_store(store):
    """A at (0,0), B at (0,1), C at (0,10)."""
    ids = store.bulk_load([city("A", 0, 0), city("B", 0, 1), city("C", 0, 10)])
    return store, dict(zip("ABC", ids))


@pytest.fixture
def random_points():
    rng = random.Random(20221022)
    return [
        Coordinate(rng.uniform(-180.0, 180.0), rng.uniform(-90.0, 90.0))
        for _ in range(600)
    ]
