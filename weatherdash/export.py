from __future__ import annotations

from datetime import datetime
from typing import Optional

import pandas as pd

from weatherdash.filters import FilterState, describe_active_filters, filtered_summary, numeric_column

CSV_COLUMNS = [
    ("Country", "country", "text"),
    ("City", "location_name", "text"),
    ("Temperature (°C)", "temperature_celsius", "number"),
    ("Humidity (%)", "humidity", "number"),
    ("Condition", "condition_text", "text"),
    ("Wind (km/h)", "wind_kph", "number"),
    ("Pressure (mb)", "pressure_mb", "number"),
]


def export_frame(df: pd.DataFrame) -> pd.DataFrame:
    """The filtered records reduced to the export columns (missing text -> "", number -> 0)."""
    if df is None:
        df = pd.DataFrame()
    out = {}
    for header, col, kind in CSV_COLUMNS:
        if kind == "number":
            out[header] = numeric_column(df, col).to_numpy()
        elif col in df.columns:
            out[header] = df[col].fillna("").astype(str).to_numpy()
        else:
            out[header] = [""] * len(df)
    return pd.DataFrame(out, columns=[header for header, _, _ in CSV_COLUMNS])


def export_csv(df: pd.DataFrame) -> str:
    return export_frame(df).to_csv(index=False, lineterminator="\n", float_format="%.10g")


def export_filename(prefix: str, extension: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"{prefix}_{when.date().isoformat()}.{extension}"


def build_report(df: pd.DataFrame, filters: FilterState, generated_at: Optional[datetime] = None) -> str:
    """Markdown summary of the filtered records."""
    generated_at = generated_at or datetime.now()
    stats = filtered_summary(df)
    return "\n".join(
        [
            "# Global Weather Report",
            "",
            f"**Generated:** {generated_at:%Y-%m-%d %H:%M:%S}",
            "",
            "## Data Summary",
            f"- **Records analyzed:** {stats['count']:,}",
            f"- **Average temperature:** {stats['avg_temperature']}°C",
            f"- **Average humidity:** {stats['avg_humidity']}%",
            f"- **Countries included:** {stats['countries']}",
            f"- **Weather conditions:** {stats['conditions']}",
            "",
            "## Applied Filters",
            describe_active_filters(filters),
            "",
            "## Analysis",
            f"This report covers weather data from {stats['countries']} countries with an average "
            f"temperature of {stats['avg_temperature']}°C and an average humidity of {stats['avg_humidity']}%.",
            "",
            "---",
            "*Generated by the Global Weather Dashboard*",
            "",
        ]
    )
