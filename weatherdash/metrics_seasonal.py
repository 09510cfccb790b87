from __future__ import annotations

from typing import Any, Dict, List

import numpy as np
import pandas as pd

from weatherdash.filters import numeric_column

QUARTERS = ["Q1", "Q2", "Q3", "Q4"]


def _month_numbers(df: pd.DataFrame) -> pd.Series:
    # A missing (or zero) month falls into month 1.
    month = numeric_column(df, "month").astype(int)
    return month.where(month != 0, 1)


def group_by_monthly_average(df: pd.DataFrame) -> Dict[str, Any]:
    """Average temperature (bars) and humidity (line) per month, months ascending."""
    if df is None or df.empty:
        return {"x": [], "y1": [], "y2": [], "labels": [], "months": []}

    frame = pd.DataFrame(
        {
            "month": _month_numbers(df).to_numpy(),
            "temperature": numeric_column(df, "temperature_celsius").to_numpy(),
            "humidity": numeric_column(df, "humidity").to_numpy(),
        }
    )
    monthly = frame.groupby("month", sort=True)[["temperature", "humidity"]].mean().reset_index()
    labels = [f"Mes {int(m)}" for m in monthly["month"]]
    return {
        "x": labels,
        "y1": monthly["temperature"].astype(float).tolist(),
        "y2": monthly["humidity"].astype(float).tolist(),
        "labels": labels,
        "months": monthly["month"].astype(int).tolist(),
    }


def quarterly_averages(df: pd.DataFrame) -> List[float]:
    if df is None or df.empty:
        return [0.0] * len(QUARTERS)
    quarter = numeric_column(df, "quarter").astype(int)
    derived = np.ceil(_month_numbers(df) / 3).astype(int)
    quarter = quarter.where(quarter != 0, derived)
    temps = numeric_column(df, "temperature_celsius")
    means = temps.groupby(quarter.to_numpy()).mean()
    return [float(means.get(q, 0.0)) for q in range(1, len(QUARTERS) + 1)]


def quarterly_waterfall(df: pd.DataFrame) -> Dict[str, Any]:
    """Quarter-over-quarter temperature deltas closed by the annual mean.

    Q1 is an absolute bar, Q2..Q4 are signed deltas against the previous
    quarter, and the final "Total" bar is the mean of the four quarters.
    """
    if df is None or df.empty:
        return {"x": [], "y": [], "measure": [], "averages": []}

    averages = quarterly_averages(df)
    y = [averages[0]] + [averages[i] - averages[i - 1] for i in range(1, len(averages))]
    measure = ["absolute"] + ["relative"] * (len(averages) - 1)
    return {
        "x": QUARTERS + ["Total"],
        "y": y + [sum(averages) / len(averages)],
        "measure": measure + ["total"],
        "averages": averages,
    }
