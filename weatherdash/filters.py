from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

ALL = "all"
SCALE_TYPES = ("linear", "log")
DEFAULT_TEMP_MIN = -30.0
DEFAULT_TEMP_MAX = 50.0
OUTLIER_IQR_FACTOR = 1.5

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass(frozen=True)
class FilterState:
    year: Union[int, str] = ALL
    month: Union[int, str] = ALL
    country: str = ALL
    temp_min: float = DEFAULT_TEMP_MIN
    temp_max: float = DEFAULT_TEMP_MAX
    series_visible: bool = True
    scale_type: str = "linear"
    show_outliers: bool = True


FILTER_FIELDS = tuple(f.name for f in fields(FilterState))


def _as_choice(value: object) -> Union[int, str]:
    """Exact-match-or-all selector: ints stay ints, numeric strings become ints."""
    if value is None:
        return ALL
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, float):
        return int(value) if value.is_integer() else ALL
    s = str(value).strip()
    if not s or s.lower() == ALL:
        return ALL
    try:
        return int(float(s))
    except ValueError:
        return s


def _as_float(value: object, default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return default if math.isnan(out) else out


def _as_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def normalize_filters(raw: Dict[str, Any], *, base: Optional[FilterState] = None) -> FilterState:
    """Coerce a loose UI/API payload into a FilterState, starting from ``base``."""
    base = base or FilterState()
    merged = {**asdict(base), **{k: v for k, v in (raw or {}).items() if k in FILTER_FIELDS}}

    country = merged.get("country")
    country = ALL if country is None or str(country).strip() in {"", ALL} else str(country)

    temp_min = _as_float(merged.get("temp_min"), base.temp_min)
    temp_max = _as_float(merged.get("temp_max"), base.temp_max)
    if temp_min > temp_max:
        # Slider semantics: the bound that was just moved drags the other one along.
        if "temp_min" in (raw or {}) and "temp_max" not in (raw or {}):
            temp_max = temp_min
        else:
            temp_min = temp_max

    scale_type = str(merged.get("scale_type") or "linear").lower()
    if scale_type not in SCALE_TYPES:
        scale_type = "linear"

    return FilterState(
        year=_as_choice(merged.get("year")),
        month=_as_choice(merged.get("month")),
        country=country,
        temp_min=temp_min,
        temp_max=temp_max,
        series_visible=_as_bool(merged.get("series_visible"), True),
        scale_type=scale_type,
        show_outliers=_as_bool(merged.get("show_outliers"), True),
    )


def merge_filters(current: FilterState, changes: Union[FilterState, Dict[str, Any]]) -> FilterState:
    if isinstance(changes, FilterState):
        return changes
    return normalize_filters(changes, base=current)


# ---------------- Quantiles / outliers ----------------
def quantile(values: Iterable[float], q: float) -> float:
    """Linear-interpolation quantile (index = q * (n - 1)); input need not be sorted."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        raise ValueError("quantile of an empty sequence")
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"quantile must be within [0, 1], got {q}")
    return float(np.quantile(np.sort(arr), q, method="linear"))


def outlier_bounds(values: Sequence[float], factor: float = OUTLIER_IQR_FACTOR) -> Tuple[float, float]:
    q1 = quantile(values, 0.25)
    q3 = quantile(values, 0.75)
    iqr = q3 - q1
    return q1 - factor * iqr, q3 + factor * iqr


# ---------------- Predicates ----------------
def numeric_column(df: pd.DataFrame, col: str, default: float = 0.0) -> pd.Series:
    """Numeric view of a column with missing / non-numeric values read as ``default``."""
    if col not in df.columns:
        return pd.Series(default, index=df.index, dtype=float)
    return pd.to_numeric(df[col], errors="coerce").fillna(default).astype(float)


def text_column(df: pd.DataFrame, col: str, default: str = "Unknown") -> pd.Series:
    if col not in df.columns:
        return pd.Series(default, index=df.index, dtype=object)
    values = df[col].astype(object).where(df[col].notna(), default)
    return values.where(values.astype(str) != "", default)


def _matches(df: pd.DataFrame, col: str, value: Union[int, str]) -> np.ndarray:
    if col not in df.columns:
        return np.zeros(len(df), dtype=bool)
    if isinstance(value, int):
        return (pd.to_numeric(df[col], errors="coerce") == value).to_numpy()
    return (df[col].astype("string") == value).fillna(False).to_numpy(dtype=bool)


def apply_filters(df: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    """Return the rows of ``df`` matching ``filters`` as a new frame (``df`` is untouched).

    Categorical and range predicates are ANDed first; the IQR outlier pass
    (when ``show_outliers`` is off) runs on that result, not on ``df``.
    """
    if df is None or df.empty:
        return pd.DataFrame() if df is None else df.iloc[0:0]

    mask = np.ones(len(df), dtype=bool)
    if filters.year != ALL:
        mask &= _matches(df, "year", filters.year)
    if filters.month != ALL:
        mask &= _matches(df, "month", filters.month)
    if filters.country != ALL:
        mask &= _matches(df, "country", filters.country)

    temps = numeric_column(df, "temperature_celsius").to_numpy()
    mask &= (temps >= filters.temp_min) & (temps <= filters.temp_max)
    filtered = df[mask]

    if not filters.show_outliers and not filtered.empty:
        kept_temps = temps[mask]
        lower, upper = outlier_bounds(kept_temps)
        filtered = filtered[(kept_temps >= lower) & (kept_temps <= upper)]

    logger.info("Filters applied: %d -> %d records", len(df), len(filtered))
    return filtered


class FilterEngine:
    """Holds the current FilterState and applies it to datasets."""

    def __init__(self, filters: Optional[FilterState] = None) -> None:
        self.filters = filters or FilterState()

    def update(self, changes: Union[FilterState, Dict[str, Any]]) -> FilterState:
        self.filters = merge_filters(self.filters, changes)
        return self.filters

    def reset(self) -> FilterState:
        self.filters = FilterState()
        return self.filters

    def apply(self, df: pd.DataFrame, filters: Optional[FilterState] = None) -> pd.DataFrame:
        return apply_filters(df, filters or self.filters)

    def adopt_temperature_range(self, temp_range: Optional[Dict[str, float]]) -> FilterState:
        """Widen/narrow the temperature window to the loaded dataset's bounds."""
        if not temp_range or temp_range.get("min") is None or temp_range.get("max") is None:
            return self.filters
        self.filters = replace(
            self.filters,
            temp_min=float(math.floor(temp_range["min"])),
            temp_max=float(math.ceil(temp_range["max"])),
        )
        return self.filters


# ---------------- Descriptions / summaries ----------------
def describe_active_filters(filters: FilterState) -> str:
    active: List[str] = []
    if filters.year != ALL:
        active.append(f"Year: {filters.year}")
    if filters.month != ALL:
        month = filters.month
        name = MONTH_NAMES[month - 1] if isinstance(month, int) and 1 <= month <= 12 else str(month)
        active.append(f"Month: {name}")
    if filters.country != ALL:
        active.append(f"Country: {filters.country}")
    if filters.temp_min > DEFAULT_TEMP_MIN or filters.temp_max < DEFAULT_TEMP_MAX:
        active.append(f"Temperature: {filters.temp_min:g}°C - {filters.temp_max:g}°C")
    if not filters.series_visible:
        active.append("Series hidden")
    if filters.scale_type == "log":
        active.append("Log scale")
    if not filters.show_outliers:
        active.append("Outliers removed")
    return ", ".join(active) if active else "No active filters"


def count_active_filters(filters: FilterState) -> int:
    default = FilterState()
    return sum(1 for name in FILTER_FIELDS if getattr(filters, name) != getattr(default, name))


def filtered_summary(df: pd.DataFrame) -> Dict[str, Any]:
    if df is None or df.empty:
        return {"count": 0, "avg_temperature": 0.0, "avg_humidity": 0.0, "countries": 0, "conditions": 0}
    return {
        "count": int(len(df)),
        "avg_temperature": round(float(numeric_column(df, "temperature_celsius").mean()), 1),
        "avg_humidity": round(float(numeric_column(df, "humidity").mean()), 1),
        "countries": int(df["country"].nunique(dropna=False)) if "country" in df.columns else 0,
        "conditions": int(df["condition_text"].nunique(dropna=False)) if "condition_text" in df.columns else 0,
    }


def filter_suggestions(df: pd.DataFrame) -> Dict[str, Any]:
    if df is None or df.empty:
        return {}
    top_countries: List[str] = []
    if "country" in df.columns:
        countries = df["country"].dropna()
        counts = countries.groupby(countries, sort=False).size()
        top_countries = [str(c) for c in counts.sort_values(ascending=False, kind="stable").head(5).index]
    temps = numeric_column(df, "temperature_celsius")
    mean = float(temps.mean())
    std = float(temps.std(ddof=0))
    return {
        "top_countries": top_countries,
        "suggested_temp_range": {"min": round(mean - std), "max": round(mean + std)},
        "total_records": int(len(df)),
        "avg_temperature": round(mean, 1),
    }


def filter_options(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Choices for the year/month/country selectors and the temperature slider."""
    stats = (metadata or {}).get("column_stats", {})
    years = sorted(int(y) for y in (stats.get("year", {}).get("unique_values") or []) if pd.notna(y))
    countries = sorted(str(c) for c in (stats.get("country", {}).get("unique_values") or []) if pd.notna(c))
    temp = stats.get("temperature_celsius", {})
    temp_min = math.floor(temp["min"]) if temp.get("min") is not None else int(DEFAULT_TEMP_MIN)
    temp_max = math.ceil(temp["max"]) if temp.get("max") is not None else int(DEFAULT_TEMP_MAX)
    # A slider needs a non-empty span.
    if temp_max <= temp_min:
        temp_max = temp_min + 1
    return {
        "years": years,
        "months": [{"value": i + 1, "name": name} for i, name in enumerate(MONTH_NAMES)],
        "countries": countries,
        "temp_range": {"min": temp_min, "max": temp_max},
    }


# ---------------- Import / export ----------------
def export_filters(filters: FilterState) -> str:
    return json.dumps(asdict(filters), indent=2)


def import_filters(config_json: str, base: Optional[FilterState] = None) -> FilterState:
    config = json.loads(config_json)
    if not isinstance(config, dict):
        raise ValueError("filter configuration must be a JSON object")
    return normalize_filters(config, base=base)
