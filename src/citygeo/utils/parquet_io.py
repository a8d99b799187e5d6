from pathlib import Path
from typing import Dict

import pandas as pd

# column -> pandas dtype of a city snapshot, in file order
CITY_SCHEMA: Dict[str, str] = {
    "id": "int64",
    "country": "string",
    "city": "string",
    "accent_city": "string",
    "region": "string",
    "longitude": "float64",
    "latitude": "float64",
}


def as_city_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Reorder and cast `df` to CITY_SCHEMA; extra columns are dropped."""
    missing = [c for c in CITY_SCHEMA if c not in df.columns]
    if missing:
        raise ValueError(f"city frame is missing columns: {', '.join(missing)}")
    return df[list(CITY_SCHEMA)].astype(CITY_SCHEMA)


def write_city_snapshot(
    df: pd.DataFrame, out_dir: str | Path, filename: str = "cities.parquet"
) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / filename
    as_city_frame(df).to_parquet(out, index=False, engine="pyarrow")
    return out


def read_city_snapshot(path: str | Path) -> pd.DataFrame:
    return as_city_frame(pd.read_parquet(path, engine="pyarrow"))
