from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from weatherdash.errors import LoadError, ValidationError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DATASET_PATH = Path(os.environ.get("WEATHERDASH_DATASET", DATA_DIR / "weather_data.json"))
DATASET_DESCRIPTION = "Global Weather Repository - real weather observations by country"

MIN_NUMERIC_COLUMNS = 5
MIN_CATEGORICAL_COLUMNS = 2
RECOMMENDED_MIN_ROWS = 100
CATEGORICAL_SAMPLE_SIZE = 50

NUMERIC_COLUMNS = [
    "latitude",
    "longitude",
    "temperature_celsius",
    "temperature_fahrenheit",
    "wind_mph",
    "wind_kph",
    "wind_degree",
    "pressure_mb",
    "pressure_in",
    "precip_mm",
    "precip_in",
    "humidity",
    "cloud",
    "feels_like_celsius",
    "feels_like_fahrenheit",
    "visibility_km",
    "visibility_miles",
    "uv_index",
    "gust_mph",
    "gust_kph",
    "air_quality_Carbon_Monoxide",
    "air_quality_Ozone",
    "air_quality_Nitrogen_dioxide",
    "air_quality_PM2.5",
    "air_quality_PM10",
    "moon_illumination",
    "year",
    "month",
    "day",
    "hour",
    "quarter",
]

CATEGORICAL_COLUMNS = [
    "country",
    "location_name",
    "timezone",
    "condition_text",
    "wind_direction",
    "moon_phase",
    "temp_category",
    "humidity_category",
    "wind_category",
]

AIR_QUALITY_INDEX_COLUMN = "air_quality_us-epa-index"


@dataclass(frozen=True)
class ColumnTypes:
    numeric: List[str] = field(default_factory=list)
    categorical: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ColumnStatistics:
    type: str
    count: int
    null_count: int
    unique_count: int
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    unique_values: Optional[List[Any]] = None


Source = Union[str, Path]


def file_signature(path: Path) -> Tuple[str, float]:
    return (str(path.resolve()), path.stat().st_mtime)


def _is_url(source: Source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


# ---------------- Validation / enrichment ----------------
def detect_column_types(df: pd.DataFrame) -> ColumnTypes:
    return ColumnTypes(
        numeric=[c for c in NUMERIC_COLUMNS if c in df.columns],
        categorical=[c for c in CATEGORICAL_COLUMNS if c in df.columns],
    )


def validate_dataset(df: pd.DataFrame) -> ColumnTypes:
    """Check the minimum column-type contract; returns the recognized columns."""
    if df is None or df.empty:
        raise ValidationError("The dataset must be a non-empty array of records")

    if len(df) < RECOMMENDED_MIN_ROWS:
        logger.warning("Dataset has %d rows, at least %d are recommended", len(df), RECOMMENDED_MIN_ROWS)

    column_types = detect_column_types(df)
    logger.info(
        "Recognized %d numeric and %d categorical columns",
        len(column_types.numeric),
        len(column_types.categorical),
    )
    if len(column_types.numeric) < MIN_NUMERIC_COLUMNS:
        raise ValidationError(
            f"At least {MIN_NUMERIC_COLUMNS} numeric columns are required, found: {len(column_types.numeric)}"
        )
    if len(column_types.categorical) < MIN_CATEGORICAL_COLUMNS:
        raise ValidationError(
            f"At least {MIN_CATEGORICAL_COLUMNS} categorical columns are required, "
            f"found: {len(column_types.categorical)}"
        )
    return column_types


def _air_quality_category(aqi: float) -> Optional[str]:
    if pd.isna(aqi) or aqi == 0:
        return None
    if aqi <= 1:
        return "Good"
    if aqi <= 2:
        return "Moderate"
    if aqi <= 3:
        return "Unhealthy for Sensitive"
    if aqi <= 4:
        return "Unhealthy"
    return "Very Unhealthy"


def enrich_dataset(df: pd.DataFrame) -> pd.DataFrame:
    """Add derived fields on a copy; source columns are left as loaded."""
    enriched = df.copy()
    if "id" not in enriched.columns:
        enriched["id"] = np.arange(1, len(enriched) + 1)
    else:
        missing_id = enriched["id"].isna()
        enriched.loc[missing_id, "id"] = np.flatnonzero(missing_id.to_numpy()) + 1

    temp = pd.to_numeric(enriched["temperature_celsius"], errors="coerce") if "temperature_celsius" in enriched.columns else None
    humidity = pd.to_numeric(enriched["humidity"], errors="coerce") if "humidity" in enriched.columns else None
    if temp is not None and humidity is not None:
        usable = temp.fillna(0).ne(0) & humidity.fillna(0).ne(0)
        comfort = temp - (0.55 - 0.0055 * humidity) * (temp - 14.5)
        enriched["comfort_index"] = comfort.where(usable)

    if AIR_QUALITY_INDEX_COLUMN in enriched.columns:
        aqi = pd.to_numeric(enriched[AIR_QUALITY_INDEX_COLUMN], errors="coerce")
        enriched["air_quality_category"] = aqi.apply(_air_quality_category)

    if temp is not None and "feels_like_celsius" in enriched.columns:
        feels = pd.to_numeric(enriched["feels_like_celsius"], errors="coerce")
        usable = temp.fillna(0).ne(0) & feels.fillna(0).ne(0)
        enriched["thermal_difference"] = (feels - temp).where(usable)

    return enriched


# ---------------- Metadata ----------------
def _json_scalar(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def column_statistics(series: pd.Series, *, numeric: bool) -> ColumnStatistics:
    values = series.dropna()
    total = int(len(series))
    try:
        uniques = values.unique()
    except TypeError:
        uniques = values.astype(str).unique()
    unique_count = int(len(uniques))
    if numeric:
        nums = pd.to_numeric(values, errors="coerce").dropna()
        return ColumnStatistics(
            type="numerical",
            count=int(len(values)),
            null_count=total - int(len(values)),
            unique_count=unique_count,
            min=float(nums.min()) if not nums.empty else None,
            max=float(nums.max()) if not nums.empty else None,
            mean=float(nums.mean()) if not nums.empty else None,
            # Year and other low-cardinality numeric selectors need their choices too.
            unique_values=[_json_scalar(v) for v in uniques[:CATEGORICAL_SAMPLE_SIZE]],
        )
    return ColumnStatistics(
        type="categorical",
        count=int(len(values)),
        null_count=total - int(len(values)),
        unique_count=unique_count,
        unique_values=[_json_scalar(v) for v in uniques[:CATEGORICAL_SAMPLE_SIZE]],
    )


def build_metadata(df: pd.DataFrame, column_types: ColumnTypes, source: Source) -> Dict[str, Any]:
    column_stats = {
        col: asdict(column_statistics(df[col], numeric=col in column_types.numeric)) for col in df.columns
    }
    temp_stats = column_stats.get("temperature_celsius")
    return {
        "source": str(source),
        "description": DATASET_DESCRIPTION,
        "total_rows": int(len(df)),
        "total_columns": int(len(df.columns)),
        "numerical_columns": list(column_types.numeric),
        "categorical_columns": list(column_types.categorical),
        "column_stats": column_stats,
        "loaded_at": datetime.now(timezone.utc).isoformat(),
        "special_info": {
            "countries": column_stats["country"]["unique_count"] if "country" in column_stats else 0,
            "temperature_range": (
                {"min": temp_stats["min"], "max": temp_stats["max"]}
                if temp_stats and temp_stats["min"] is not None
                else None
            ),
            "conditions": column_stats["condition_text"]["unique_count"] if "condition_text" in column_stats else 0,
        },
    }


# ---------------- Loaders ----------------
def read_records(source: Source) -> pd.DataFrame:
    """Read a JSON array of flat records from a local path or an http(s) URL."""
    try:
        df = pd.read_json(source, orient="records", convert_dates=False, dtype=False)
    except FileNotFoundError as exc:
        raise LoadError(f"Dataset not found: {source}") from exc
    except ValueError as exc:
        raise LoadError(f"Dataset at {source} is not a JSON array of records: {exc}") from exc
    except OSError as exc:
        raise LoadError(f"Could not fetch dataset from {source}: {exc}") from exc
    return df


@lru_cache(maxsize=4)
def _read_local_cached(signature: Tuple[str, float]) -> pd.DataFrame:
    path, _ = signature
    return read_records(path)


def prepare_dataset(df: pd.DataFrame, source: Source = "<memory>") -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """Validate, enrich and describe an in-memory frame of records."""
    column_types = validate_dataset(df)
    enriched = enrich_dataset(df)
    metadata = build_metadata(enriched, column_types, source)
    return enriched, metadata


def load_dataset(source: Optional[Source] = None) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    source = source or DATASET_PATH
    logger.info("Loading weather dataset from %s", source)
    if _is_url(source):
        raw = read_records(source)
    else:
        path = Path(source)
        if not path.exists():
            raise LoadError(f"Dataset not found: {path}")
        # The cached frame is shared; enrichment below works on a copy.
        raw = _read_local_cached(file_signature(path))
    df, metadata = prepare_dataset(raw, source)
    logger.info("Loaded %d weather records from %d countries", len(df), metadata["special_info"]["countries"])
    return df, metadata


# ---------------- Query helpers ----------------
def unique_values(df: pd.DataFrame, column: str) -> List[Any]:
    if df is None or column not in df.columns:
        return []
    values = df[column].dropna().unique().tolist()
    try:
        return sorted(values)
    except TypeError:
        return sorted(values, key=str)


def column_range(df: pd.DataFrame, column: str) -> Dict[str, float]:
    if df is None or column not in NUMERIC_COLUMNS or column not in df.columns:
        return {"min": 0.0, "max": 100.0}
    values = pd.to_numeric(df[column], errors="coerce").dropna()
    if values.empty:
        return {"min": 0.0, "max": 100.0}
    return {"min": float(values.min()), "max": float(values.max())}


def column_summary(df: pd.DataFrame, column: str) -> Optional[Dict[str, float]]:
    if df is None or column not in NUMERIC_COLUMNS or column not in df.columns:
        return None
    values = pd.to_numeric(df[column], errors="coerce").dropna()
    if values.empty:
        return None
    return {
        "count": int(len(values)),
        "min": float(values.min()),
        "max": float(values.max()),
        "mean": float(values.mean()),
        "median": float(values.median()),
        "std": float(values.std(ddof=0)),
    }


def dataset_info(metadata: Optional[Dict[str, Any]]) -> str:
    if not metadata:
        return "No dataset loaded"
    special = metadata.get("special_info", {})
    temp_range = special.get("temperature_range")
    temp_text = f"{temp_range['min']:.1f}°C to {temp_range['max']:.1f}°C" if temp_range else "N/A"
    return (
        f"Dataset: {metadata.get('description')}. "
        f"Records: {metadata.get('total_rows', 0):,}. "
        f"Columns: {metadata.get('total_columns', 0)} "
        f"({len(metadata.get('numerical_columns', []))} numeric, "
        f"{len(metadata.get('categorical_columns', []))} categorical). "
        f"Temperature range: {temp_text}. "
        f"Countries: {special.get('countries', 0)}. "
        f"Weather conditions: {special.get('conditions', 0)}. "
        f"Loaded: {metadata.get('loaded_at')}."
    )
