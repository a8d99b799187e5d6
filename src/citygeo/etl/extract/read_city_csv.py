# src/citygeo/etl/extract/read_city_csv.py

from pathlib import Path
from typing import Dict, Iterator, List, Tuple

import pandas as pd

# normalised header -> field; headers are lowercased with spaces/underscores removed
_COLUMNS: Dict[str, str] = {
    "country": "country",
    "city": "city",
    "accentcity": "accent_city",
    "region": "region",
    "longitude": "longitude",
    "latitude": "latitude",
}
_TEXT_COLUMNS = ("country", "city", "accent_city", "region")

CityRow = Tuple[str, str, str, str, object, object]


def _normalize_header(name: str) -> str:
    return str(name).strip().lower().replace(" ", "").replace("_", "")


def _rename_map(columns) -> Dict[str, str]:
    mapping = {}
    for col in columns:
        field = _COLUMNS.get(_normalize_header(col))
        if field is not None:
            mapping[col] = field
    missing = set(_COLUMNS.values()) - set(mapping.values())
    if missing:
        raise ValueError(f"CSV is missing columns: {', '.join(sorted(missing))}")
    return mapping


def iter_city_rows(path: str | Path, batch_size: int = 10000) -> Iterator[List[CityRow]]:
    """Stream a world-cities CSV as batches of collaborator tuples.

    Args:
        path: CSV file, optionally zip/gzip compressed (inferred from the
            extension; a zip must hold a single CSV).
        batch_size: Number of rows per yielded batch.

    Returns:
        An iterator over lists of
        (country, city, accent_city, region, longitude, latitude) tuples.
        Coordinates are passed through as read; validation happens when
        the batch is loaded into the store.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    header = pd.read_csv(path, nrows=0, encoding="utf-8", encoding_errors="replace")
    rename = _rename_map(header.columns)
    dtype = {col: str for col, field in rename.items() if field in _TEXT_COLUMNS}

    reader = pd.read_csv(
        path,
        usecols=list(rename),
        dtype=dtype,
        keep_default_na=False,
        float_precision="round_trip",
        chunksize=batch_size,
        encoding="utf-8",
        encoding_errors="replace",
    )
    with reader:
        for chunk in reader:
            chunk = chunk.rename(columns=rename)
            yield list(
                zip(
                    chunk["country"],
                    chunk["city"],
                    chunk["accent_city"],
                    chunk["region"],
                    chunk["longitude"].tolist(),
                    chunk["latitude"].tolist(),
                )
            )
