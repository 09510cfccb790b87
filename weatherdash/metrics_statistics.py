from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from weatherdash.filters import numeric_column, quantile, text_column
from weatherdash.metrics_conditions import condition_counts

CORRELATION_COLUMNS = ["temperature_celsius", "humidity", "pressure_mb", "wind_kph", "uv_index"]
CORRELATION_LABELS = {
    "temperature_celsius": "Temperature",
    "humidity": "Humidity",
    "pressure_mb": "Pressure",
    "wind_kph": "Wind",
    "uv_index": "UV",
}
RUG_STEP = 50


# ---------------- Correlation ----------------
def correlation_matrix(df: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Pearson coefficients over pairwise-complete observations.

    Nulls and non-numeric values drop out pair by pair. A pair with fewer than
    two observations, or with zero variance on either side, scores 0.
    """
    columns = list(columns or CORRELATION_COLUMNS)
    labels = [CORRELATION_LABELS.get(c, c) for c in columns]
    if df is None or df.empty:
        return {"x": labels, "y": labels, "z": [], "columns": columns}

    numeric = pd.DataFrame(
        {c: pd.to_numeric(df[c], errors="coerce") if c in df.columns else np.nan for c in columns},
        index=df.index,
    ).astype(float)
    corr = numeric.corr(method="pearson", min_periods=2).reindex(index=columns, columns=columns)
    z = corr.fillna(0.0).clip(-1.0, 1.0).to_numpy()
    # corr() is symmetric up to rounding; mirror the upper triangle to make it exact.
    z = np.triu(z) + np.triu(z, 1).T
    return {"x": labels, "y": labels, "z": z.tolist(), "columns": columns}


# ---------------- Pareto ----------------
def pareto_analysis(
    df: pd.DataFrame,
    group_by: str = "country",
    value: str = "temperature_celsius",
    top_n: int = 20,
) -> Dict[str, List[Any]]:
    """Groups ranked by absolute average with running share of the top ``top_n``.

    Percentages are shares of the summed absolute averages of the retained
    groups only, so the cumulative series always ends at 100.
    """
    if df is None or df.empty:
        return {"categories": [], "values": [], "cumulative": [], "percentages": []}

    frame = pd.DataFrame(
        {
            "group": text_column(df, group_by).astype(str).to_numpy(),
            "value": numeric_column(df, value).to_numpy(),
        }
    )
    averages = frame.groupby("group", sort=False)["value"].mean()
    order = averages.abs().sort_values(ascending=False, kind="stable").index
    top = averages.reindex(order).head(top_n)

    magnitudes = top.abs().to_numpy()
    total = float(magnitudes.sum())
    if total > 0:
        percentages = magnitudes / total * 100
    else:
        percentages = np.zeros(len(magnitudes))
    return {
        "categories": [str(c) for c in top.index],
        "values": [float(v) for v in top.to_numpy()],
        "cumulative": [float(v) for v in np.cumsum(percentages)],
        "percentages": [float(v) for v in percentages],
    }


# ---------------- Density ----------------
def _summary(sorted_values: np.ndarray) -> Dict[str, float]:
    if sorted_values.size == 0:
        return {"mean": 0.0, "median": 0.0, "q1": 0.0, "q3": 0.0}
    return {
        "mean": float(sorted_values.mean()),
        "median": quantile(sorted_values, 0.5),
        "q1": quantile(sorted_values, 0.25),
        "q3": quantile(sorted_values, 0.75),
    }


def scott_bandwidth(values: np.ndarray) -> float:
    return 1.06 * float(np.std(values, ddof=1)) * values.size ** (-1 / 5)


def kernel_density_estimate(values: Iterable[float], grid_points: int = 100) -> Dict[str, Any]:
    """Gaussian KDE evaluated on ``grid_points + 1`` points spanning [min, max].

    Non-finite inputs are ignored. With fewer than two values, or no spread,
    the curve is empty but ``raw_values``, ``summary`` and ``rug`` are kept.
    """
    arr = np.asarray([v for v in values if v is not None], dtype=float)
    arr = np.sort(arr[np.isfinite(arr)])
    result: Dict[str, Any] = {
        "x": [],
        "y": [],
        "raw_values": arr.tolist(),
        "summary": _summary(arr),
        "rug": arr[::RUG_STEP].tolist(),
    }
    if arr.size < 2:
        return result

    h = scott_bandwidth(arr)
    lo, hi = float(arr[0]), float(arr[-1])
    if h <= 0 or hi == lo:
        return result

    grid_points = max(int(grid_points), 1)
    step = (hi - lo) / grid_points
    grid = lo + np.arange(grid_points + 1) * step
    norm = 1.0 / (arr.size * h * math.sqrt(2 * math.pi))
    density = np.empty(grid.size)
    for i, x in enumerate(grid):
        u = (x - arr) / h
        density[i] = norm * np.exp(-0.5 * u * u).sum()

    result["x"] = grid.tolist()
    result["y"] = density.tolist()
    return result


def temperature_density(df: pd.DataFrame, column: str = "temperature_celsius", grid_points: int = 100) -> Dict[str, Any]:
    if df is None or df.empty or column not in df.columns:
        return kernel_density_estimate([], grid_points)
    return kernel_density_estimate(pd.to_numeric(df[column], errors="coerce").dropna(), grid_points)


# ---------------- Weather stats ----------------
def empty_weather_stats() -> Dict[str, Any]:
    return {
        "total_countries": 0,
        "temperature_range": {"min": 0.0, "max": 0.0},
        "avg_temperature": 0.0,
        "avg_humidity": 0.0,
        "top_conditions": [],
        "countries": [],
    }


def compute_weather_stats(df: pd.DataFrame, top_k: int = 5) -> Dict[str, Any]:
    """Headline numbers for the KPI header; zero-defaulted like the charts."""
    if df is None or df.empty:
        return empty_weather_stats()

    temps = numeric_column(df, "temperature_celsius")
    countries = df["country"].dropna().astype(str).unique().tolist() if "country" in df.columns else []
    top = condition_counts(df).head(top_k)
    return {
        "total_countries": len(countries),
        "temperature_range": {"min": float(temps.min()), "max": float(temps.max())},
        "avg_temperature": float(temps.mean()),
        "avg_humidity": float(numeric_column(df, "humidity").mean()),
        "top_conditions": [{"condition": str(c), "count": int(n)} for c, n in top.items()],
        "countries": countries,
    }
