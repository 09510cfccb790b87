from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pandas as pd

from weatherdash.filters import numeric_column, text_column
from weatherdash.regions import flow_region, radar_region

TREEMAP_ROOT = "World"
MAX_COUNTRIES_PER_BAND = 20
RADAR_METRICS = ["Temperature", "Humidity", "Pressure", "Wind", "UV"]

# (upper bound exclusive, label); the last band is open-ended.
TEMPERATURE_BANDS: List[Tuple[float, str]] = [
    (0.0, "Very Cold"),
    (10.0, "Cold"),
    (20.0, "Temperate"),
    (30.0, "Warm"),
    (float("inf"), "Very Warm"),
]


def temperature_band(avg_temp: float) -> str:
    for upper, label in TEMPERATURE_BANDS:
        if avg_temp < upper:
            return label
    return TEMPERATURE_BANDS[-1][1]


def _country_frame(df: pd.DataFrame) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "country": text_column(df, "country").to_numpy(),
            "temperature": numeric_column(df, "temperature_celsius").to_numpy(),
            "humidity": numeric_column(df, "humidity").to_numpy(),
        }
    )


def build_treemap_hierarchy(df: pd.DataFrame) -> Dict[str, Any]:
    """World -> temperature band -> country (at most 20 countries per band)."""
    if df is None or df.empty:
        return {"ids": [], "labels": [], "parents": [], "values": []}

    per_country = _country_frame(df).groupby("country", sort=False)["temperature"].mean()

    ids: List[str] = [TREEMAP_ROOT]
    labels: List[str] = [TREEMAP_ROOT]
    parents: List[str] = [""]
    values: List[int] = [int(len(per_country))]

    bands: Dict[str, List[Tuple[str, float]]] = {label: [] for _, label in TEMPERATURE_BANDS}
    for country, avg in per_country.items():
        bands[temperature_band(float(avg))].append((str(country), float(avg)))

    for band, members in bands.items():
        if not members:
            continue
        ids.append(band)
        labels.append(band)
        parents.append(TREEMAP_ROOT)
        values.append(len(members))
        for country, avg in members[:MAX_COUNTRIES_PER_BAND]:
            ids.append(f"{band}/{country}")
            labels.append(f"{country} ({avg:.1f}°C)")
            parents.append(band)
            values.append(1)

    return {"ids": ids, "labels": labels, "parents": parents, "values": values}


def build_sankey_flow(df: pd.DataFrame) -> Dict[str, Any]:
    """Region -> weather condition flows weighted by record count."""
    if df is None or df.empty:
        return {"nodes": [], "links": []}

    regions = [flow_region(c) for c in text_column(df, "country", default="")]
    conditions = text_column(df, "condition_text").astype(str).tolist()

    node_index: Dict[str, int] = {}
    link_counts: Dict[Tuple[str, str], int] = {}
    for region, condition in zip(regions, conditions):
        node_index.setdefault(region, len(node_index))
        node_index.setdefault(condition, len(node_index))
        link_counts[(region, condition)] = link_counts.get((region, condition), 0) + 1

    return {
        "nodes": [{"label": label} for label in node_index],
        "links": [
            {"source": node_index[region], "target": node_index[condition], "value": count}
            for (region, condition), count in link_counts.items()
        ],
    }


def aggregate_by_country(df: pd.DataFrame) -> Dict[str, Any]:
    """Per-country averages feeding the choropleth map."""
    if df is None or df.empty:
        return {"locations": [], "z": [], "avg_humidity": [], "record_count": [], "text": []}

    per_country = (
        _country_frame(df)
        .groupby("country", sort=False)
        .agg(avg_temperature=("temperature", "mean"), avg_humidity=("humidity", "mean"), record_count=("temperature", "size"))
        .reset_index()
    )
    text = [
        f"{r.country}<br>Temp: {r.avg_temperature:.1f}°C<br>Humidity: {r.avg_humidity:.1f}%<br>Records: {r.record_count}"
        for r in per_country.itertuples(index=False)
    ]
    return {
        "locations": per_country["country"].astype(str).tolist(),
        "z": per_country["avg_temperature"].astype(float).tolist(),
        "avg_humidity": per_country["avg_humidity"].astype(float).tolist(),
        "record_count": per_country["record_count"].astype(int).tolist(),
        "text": text,
    }


def build_regional_radar_profile(df: pd.DataFrame) -> Dict[str, Any]:
    """Five linearly normalized metrics per region so the axes share a scale.

    [avg temperature, avg humidity / 100 * 50, (avg pressure - 1000) / 10,
    avg wind kph, avg UV * 5]
    """
    if df is None or df.empty:
        return {}

    frame = pd.DataFrame(
        {
            "region": [radar_region(c) for c in text_column(df, "country", default="")],
            "temperature": numeric_column(df, "temperature_celsius").to_numpy(),
            "humidity": numeric_column(df, "humidity").to_numpy(),
            "pressure": numeric_column(df, "pressure_mb").to_numpy(),
            "wind": numeric_column(df, "wind_kph").to_numpy(),
            "uv": numeric_column(df, "uv_index").to_numpy(),
        }
    )
    means = frame.groupby("region", sort=False).mean()

    result: Dict[str, Any] = {}
    for region, row in means.iterrows():
        result[str(region)] = {
            "r": [
                float(row["temperature"]),
                float(row["humidity"] / 100 * 50),
                float((row["pressure"] - 1000) / 10),
                float(row["wind"]),
                float(row["uv"] * 5),
            ],
            "theta": list(RADAR_METRICS),
            "name": str(region),
        }
    return result
