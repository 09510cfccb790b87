from __future__ import annotations

import io
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import altair as alt
import pandas as pd

from weatherdash.aggregation import CHART_DEFINITIONS, ChartType, parse_chart_type
from weatherdash.filters import FilterState

logger = logging.getLogger(__name__)

alt.data_transformers.disable_max_rows()

CHART_HEIGHT = 300
EXPORT_FORMATS = ("json", "html", "svg", "png")
CHART_TITLES = {d.chart_type: d.title for d in CHART_DEFINITIONS}


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _y_scale(filters: Optional[FilterState]) -> alt.Scale:
    # symlog keeps sub-zero temperatures plottable on a "log" axis.
    if filters is not None and filters.scale_type == "log":
        return alt.Scale(type="symlog")
    return alt.Scale(type="linear")


# ---------------- Builders ----------------
def combined_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = pd.DataFrame(
        {"label": data.get("x", []), "month": data.get("months", []), "temperature": data.get("y1", []), "humidity": data.get("y2", [])}
    )
    x = alt.X("label:N", title="Month", sort=None)
    bars = (
        alt.Chart(df)
        .mark_bar(color="#ff6b6b")
        .encode(
            x=x,
            y=alt.Y("temperature:Q", title="Temperature (°C)", scale=_y_scale(filters)),
            tooltip=["label:N", alt.Tooltip("temperature:Q", format=".1f")],
        )
    )
    if filters is not None and not filters.series_visible:
        return bars.properties(height=CHART_HEIGHT)
    line = (
        alt.Chart(df)
        .mark_line(point=True, color="#4ecdc4")
        .encode(
            x=x,
            y=alt.Y("humidity:Q", title="Humidity (%)"),
            tooltip=["label:N", alt.Tooltip("humidity:Q", format=".1f")],
        )
    )
    return alt.layer(bars, line).resolve_scale(y="independent").properties(height=CHART_HEIGHT)


def waterfall_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    rows: List[Dict[str, Any]] = []
    running = 0.0
    for label, value, measure in zip(data.get("x", []), data.get("y", []), data.get("measure", [])):
        if measure == "relative":
            start, end = running, running + value
        else:
            start, end = 0.0, value
        running = end
        rows.append({"label": label, "start": start, "end": end, "value": value, "measure": measure})
    df = pd.DataFrame(rows, columns=["label", "start", "end", "value", "measure"])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("label:N", title="Quarter", sort=None),
            y=alt.Y("start:Q", title="Temperature (°C)"),
            y2="end:Q",
            color=alt.Color("measure:N", title="Bar"),
            tooltip=["label:N", "measure:N", alt.Tooltip("value:Q", format=".2f")],
        )
        .properties(height=CHART_HEIGHT)
    )


def treemap_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    root = data.get("ids", [None])[0] if data.get("ids") else None
    leaves = [
        {"band": parent, "country": label, "value": value}
        for label, parent, value in zip(data.get("labels", []), data.get("parents", []), data.get("values", []))
        if parent and parent != root
    ]
    df = pd.DataFrame(leaves, columns=["band", "country", "value"])
    return (
        alt.Chart(df)
        .mark_bar(stroke="white")
        .encode(
            x=alt.X("sum(value):Q", title="Countries", stack="zero"),
            y=alt.Y("band:N", title="Temperature band", sort=None),
            color=alt.Color("band:N", legend=None),
            detail="country:N",
            tooltip=["band:N", "country:N"],
        )
        .properties(height=CHART_HEIGHT)
    )


def sankey_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    labels = [node["label"] for node in data.get("nodes", [])]
    df = pd.DataFrame(
        [
            {"region": labels[link["source"]], "condition": labels[link["target"]], "records": link["value"]}
            for link in data.get("links", [])
        ],
        columns=["region", "condition", "records"],
    )
    return (
        alt.Chart(df)
        .mark_rect()
        .encode(
            x=alt.X("condition:N", title="Condition"),
            y=alt.Y("region:N", title="Region"),
            color=alt.Color("records:Q", title="Records", scale=alt.Scale(scheme="blues")),
            tooltip=["region:N", "condition:N", "records:Q"],
        )
        .properties(height=CHART_HEIGHT)
    )


def swarm_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    rows = [
        {"condition": condition, "temperature": y, "text": text}
        for condition, group in data.items()
        for y, text in zip(group.get("y", []), group.get("text", []))
    ]
    df = pd.DataFrame(rows, columns=["condition", "temperature", "text"])
    return (
        alt.Chart(df)
        .mark_circle(size=30, opacity=0.7)
        .encode(
            x=alt.X("condition:N", title="Condition", sort=None),
            xOffset="jitter:Q",
            y=alt.Y("temperature:Q", title="Temperature (°C)", scale=_y_scale(filters)),
            color=alt.Color("condition:N", legend=None),
            tooltip=["condition:N", alt.Tooltip("temperature:Q", format=".1f")],
        )
        .transform_calculate(jitter="random()")
        .properties(height=CHART_HEIGHT)
    )


def geo_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = pd.DataFrame(
        {
            "country": data.get("locations", []),
            "avg_temperature": data.get("z", []),
            "avg_humidity": data.get("avg_humidity", []),
            "records": data.get("record_count", []),
        }
    )
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("avg_temperature:Q", title="Average temperature (°C)"),
            y=alt.Y("country:N", title=None, sort="-x"),
            color=alt.Color("avg_temperature:Q", scale=alt.Scale(scheme="redyellowblue", reverse=True), title="°C"),
            tooltip=[
                "country:N",
                alt.Tooltip("avg_temperature:Q", format=".1f"),
                alt.Tooltip("avg_humidity:Q", format=".1f"),
                "records:Q",
            ],
        )
    )


def funnel_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = pd.DataFrame({"condition": data.get("y", []), "records": data.get("x", [])})
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("records:Q", title="Records"),
            y=alt.Y("condition:N", title=None, sort="-x"),
            color=alt.Color("condition:N", legend=None),
            tooltip=["condition:N", "records:Q"],
        )
        .properties(height=CHART_HEIGHT)
    )


def radar_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    rows = [
        {"region": profile["name"], "metric": metric, "value": value}
        for profile in data.values()
        for metric, value in zip(profile["theta"], profile["r"])
    ]
    df = pd.DataFrame(rows, columns=["region", "metric", "value"])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("metric:N", title=None, sort=None),
            xOffset="region:N",
            y=alt.Y("value:Q", title="Normalized value"),
            color=alt.Color("region:N", title="Region"),
            tooltip=["region:N", "metric:N", alt.Tooltip("value:Q", format=".2f")],
        )
        .properties(height=CHART_HEIGHT)
    )


def _matrix_frame(names: List[str], matrix: List[List[float]], row: str, col: str, value: str) -> pd.DataFrame:
    rows = [
        {row: names[i], col: names[j], value: matrix[i][j]}
        for i in range(len(matrix))
        for j in range(len(matrix[i]))
    ]
    return pd.DataFrame(rows, columns=[row, col, value])


def heatmap_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = _matrix_frame(data.get("x", []), data.get("z", []), "row", "column", "r")
    base = alt.Chart(df).encode(x=alt.X("column:N", title=None, sort=None), y=alt.Y("row:N", title=None, sort=None))
    cells = base.mark_rect().encode(
        color=alt.Color("r:Q", scale=alt.Scale(scheme="redblue", domain=[-1, 1], reverse=True), title="r"),
        tooltip=["row:N", "column:N", alt.Tooltip("r:Q", format=".2f")],
    )
    labels = base.mark_text(fontSize=11).encode(text=alt.Text("r:Q", format=".2f"))
    return alt.layer(cells, labels).properties(height=CHART_HEIGHT)


def ribbon_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = _matrix_frame(data.get("names", []), data.get("matrix", []), "condition", "with", "countries")
    return (
        alt.Chart(df)
        .mark_rect()
        .encode(
            x=alt.X("with:N", title=None, sort=None),
            y=alt.Y("condition:N", title=None, sort=None),
            color=alt.Color("countries:Q", title="Shared countries", scale=alt.Scale(scheme="purples")),
            tooltip=["condition:N", "with:N", "countries:Q"],
        )
        .properties(height=CHART_HEIGHT)
    )


def pareto_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    df = pd.DataFrame(
        {
            "category": data.get("categories", []),
            "value": data.get("values", []),
            "cumulative": data.get("cumulative", []),
            "percentage": data.get("percentages", []),
        }
    )
    x = alt.X("category:N", title=None, sort=None)
    bars = alt.Chart(df).mark_bar(color="#4ecdc4").encode(
        x=x,
        y=alt.Y("value:Q", title="Average temperature (°C)"),
        tooltip=["category:N", alt.Tooltip("value:Q", format=".1f"), alt.Tooltip("percentage:Q", format=".1f")],
    )
    line = alt.Chart(df).mark_line(point=True, color="#ff6b6b").encode(
        x=x,
        y=alt.Y("cumulative:Q", title="Cumulative %", scale=alt.Scale(domain=[0, 100])),
        tooltip=["category:N", alt.Tooltip("cumulative:Q", format=".1f")],
    )
    rule = alt.Chart(pd.DataFrame({"threshold": [80]})).mark_rule(strokeDash=[4, 4], color="gray").encode(y="threshold:Q")
    return alt.layer(bars, alt.layer(line, rule)).resolve_scale(y="independent").properties(height=CHART_HEIGHT)


def kde_chart(data: Dict[str, Any], filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    curve = pd.DataFrame({"temperature": data.get("x", []), "density": data.get("y", [])})
    area = (
        alt.Chart(curve)
        .mark_area(opacity=0.5, line=True)
        .encode(
            x=alt.X("temperature:Q", title="Temperature (°C)"),
            y=alt.Y("density:Q", title="Density"),
            tooltip=[alt.Tooltip("temperature:Q", format=".1f"), alt.Tooltip("density:Q", format=".4f")],
        )
    )
    rug = (
        alt.Chart(pd.DataFrame({"temperature": data.get("rug", [])}))
        .mark_tick(color="black", opacity=0.5)
        .encode(x="temperature:Q")
    )
    summary = data.get("summary") or {}
    median = (
        alt.Chart(pd.DataFrame({"median": [summary.get("median", 0.0)]}))
        .mark_rule(color="#ff6b6b", strokeDash=[4, 4])
        .encode(x="median:Q")
    )
    layers = [area, rug]
    if data.get("x"):
        layers.append(median)
    return alt.layer(*layers).properties(height=CHART_HEIGHT)


CHART_BUILDERS: Dict[ChartType, Callable[[Any, Optional[FilterState]], alt.TopLevelMixin]] = {
    ChartType.COMBINED: combined_chart,
    ChartType.WATERFALL: waterfall_chart,
    ChartType.TREEMAP: treemap_chart,
    ChartType.SANKEY: sankey_chart,
    ChartType.SWARM: swarm_chart,
    ChartType.GEO: geo_chart,
    ChartType.FUNNEL: funnel_chart,
    ChartType.RADAR: radar_chart,
    ChartType.HEATMAP: heatmap_chart,
    ChartType.RIBBON: ribbon_chart,
    ChartType.PARETO: pareto_chart,
    ChartType.KDE: kde_chart,
}


def build_chart(chart_type: Any, data: Any, filters: Optional[FilterState] = None) -> alt.TopLevelMixin:
    chart_type = parse_chart_type(chart_type)
    return CHART_BUILDERS[chart_type](data, filters).properties(title=CHART_TITLES[chart_type])


# ---------------- Renderers ----------------
class ChartRenderer(Protocol):
    def render(self, container_id: str, data: Any, chart_type: Any, filters: Optional[FilterState] = None) -> bool:
        ...

    def update(self, container_id: str, data: Any, chart_type: Any, filters: Optional[FilterState] = None) -> bool:
        ...

    def clear(self, container_id: str) -> None:
        ...

    def clear_all(self) -> None:
        ...

    def export_image(self, container_id: str, fmt: str = "png") -> Union[str, bytes]:
        ...


class AltairChartRenderer:
    """Keeps the latest Altair chart per container id."""

    def __init__(self) -> None:
        self.charts: Dict[str, alt.TopLevelMixin] = {}

    def render(self, container_id: str, data: Any, chart_type: Any, filters: Optional[FilterState] = None) -> bool:
        try:
            self.charts[container_id] = build_chart(chart_type, data, filters)
        except Exception:
            logger.exception("Failed to render %s into %s", chart_type, container_id)
            return False
        return True

    def update(self, container_id: str, data: Any, chart_type: Any, filters: Optional[FilterState] = None) -> bool:
        return self.render(container_id, data, chart_type, filters)

    def clear(self, container_id: str) -> None:
        self.charts.pop(container_id, None)

    def clear_all(self) -> None:
        self.charts.clear()

    def export_image(self, container_id: str, fmt: str = "png") -> Union[str, bytes]:
        if container_id not in self.charts:
            raise KeyError(f"No chart rendered in {container_id}")
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        chart = self.charts[container_id]
        if fmt == "json":
            return json.dumps(to_vega_spec(chart), indent=2)
        if fmt == "html":
            return chart.to_html()
        if fmt == "svg":
            text = io.StringIO()
            chart.save(text, format="svg")
            return text.getvalue()
        buffer = io.BytesIO()
        chart.save(buffer, format="png", scale_factor=2)
        return buffer.getvalue()
