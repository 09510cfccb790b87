from __future__ import annotations

from typing import Any, Dict, List

import numpy as np
import pandas as pd

from weatherdash.filters import numeric_column, text_column


def condition_counts(df: pd.DataFrame) -> pd.Series:
    """Records per condition, most frequent first; ties keep first-seen order."""
    conditions = text_column(df, "condition_text").astype(str)
    counts = conditions.groupby(conditions, sort=False).size()
    return counts.sort_values(ascending=False, kind="stable")


def _format_value(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return "N/A"
    return f"{value:g}" if isinstance(value, (int, float, np.number)) else str(value)


def sample_by_top_conditions(df: pd.DataFrame, k: int = 8, cap_per_group: int = 200) -> Dict[str, Any]:
    """Temperature points for the ``k`` most frequent conditions (swarm plot).

    Each group keeps the first ``cap_per_group`` matching records in dataset
    order; this is a positional truncation, not a random sample.
    """
    if df is None or df.empty:
        return {}

    top = condition_counts(df).head(k).index.tolist()
    conditions = text_column(df, "condition_text").astype(str).to_numpy()
    temps = numeric_column(df, "temperature_celsius").to_numpy()
    countries = df["country"].tolist() if "country" in df.columns else [None] * len(df)
    raw_temps = df["temperature_celsius"].tolist() if "temperature_celsius" in df.columns else [None] * len(df)
    humidity = df["humidity"].tolist() if "humidity" in df.columns else [None] * len(df)

    result: Dict[str, Any] = {}
    for condition in top:
        positions = np.flatnonzero(conditions == condition)[:cap_per_group]
        result[condition] = {
            "x": [condition] * len(positions),
            "y": [float(temps[i]) for i in positions],
            "text": [
                f"{_format_value(countries[i])}<br>Temp: {_format_value(raw_temps[i])}°C"
                f"<br>Humidity: {_format_value(humidity[i])}%"
                for i in positions
            ],
        }
    return result


def rank_conditions_for_funnel(df: pd.DataFrame, top_n: int = 7) -> Dict[str, List[Any]]:
    if df is None or df.empty:
        return {"x": [], "y": []}
    top = condition_counts(df).head(top_n)
    return {"x": [int(v) for v in top.to_numpy()], "y": [str(c) for c in top.index]}


def build_condition_chord_matrix(df: pd.DataFrame, top_k: int = 5) -> Dict[str, Any]:
    """Co-occurrence of the ``top_k`` conditions across countries (ribbon chart).

    ``matrix[i][j]`` counts countries reporting both condition i and j; the
    diagonal is zero.
    """
    if df is None or df.empty:
        return {"names": [], "matrix": []}

    names = condition_counts(df).head(top_k).index.tolist()
    frame = pd.DataFrame(
        {
            "country": text_column(df, "country").astype(str).to_numpy(),
            "condition": text_column(df, "condition_text").astype(str).to_numpy(),
        }
    )
    frame = frame[frame["condition"].isin(names)].drop_duplicates()
    presence = pd.crosstab(frame["country"], frame["condition"]).reindex(columns=names, fill_value=0)
    presence = (presence > 0).astype(int)
    co = presence.T.dot(presence).to_numpy()
    np.fill_diagonal(co, 0)
    return {"names": [str(n) for n in names], "matrix": co.astype(int).tolist()}
