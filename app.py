import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from weatherdash.aggregation import CHART_DEFINITIONS, ChartType
from weatherdash.charts import build_chart
from weatherdash.data import dataset_info, load_dataset
from weatherdash.errors import DashboardError
from weatherdash.export import build_report, export_csv, export_filename
from weatherdash.filters import ALL, MONTH_NAMES, describe_active_filters, filter_options, filtered_summary
from weatherdash.state import DashboardState

alt.data_transformers.disable_max_rows()

CHART_TABS = [
    ("Seasonal", [ChartType.COMBINED, ChartType.WATERFALL]),
    ("Geography", [ChartType.GEO, ChartType.TREEMAP, ChartType.RADAR]),
    ("Conditions", [ChartType.SWARM, ChartType.FUNNEL, ChartType.SANKEY, ChartType.RIBBON]),
    ("Statistics", [ChartType.HEATMAP, ChartType.PARETO, ChartType.KDE]),
]
CHART_TITLES = {d.chart_type: d.title for d in CHART_DEFINITIONS}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def filter_chips(description: str) -> str:
    chips: List[str] = [part.strip() for part in description.split(",")] if description else []
    return "".join(f"<span class='chip'>{txt}</span>" for txt in chips)


def select_with_all(label: str, options: list, format_func=str):
    return st.selectbox(label, [ALL] + list(options), format_func=lambda v: "All" if v == ALL else format_func(v))


def render_chart(state: DashboardState, chart_type: ChartType):
    with card(CHART_TITLES[chart_type]):
        if chart_type not in state.charts:
            st.warning("This chart could not be computed for the current filters.")
            return
        chart = build_chart(chart_type, state.charts[chart_type], state.filters).properties(title="")
        st.altair_chart(chart, use_container_width=True)


# ---------- UI setup ----------
st.set_page_config(page_title="Global Weather Dashboard", layout="wide")
inject_base_styles()
st.title("Global Weather Dashboard")
st.caption("Interactive analysis of weather observations by country.")

try:
    df, metadata = load_dataset()
except DashboardError as exc:
    st.error(f"Could not load the weather dataset: {exc}")
    if st.button("Retry"):
        st.rerun()
    st.stop()

state = DashboardState()
state.set_dataset(df, metadata)
options = filter_options(metadata)

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Filters")
    year = select_with_all("Year", options["years"])
    month = select_with_all("Month", [m["value"] for m in options["months"]], format_func=lambda m: MONTH_NAMES[m - 1])
    country = select_with_all("Country", options["countries"])
    lo, hi = options["temp_range"]["min"], options["temp_range"]["max"]
    temp_range = st.slider("Temperature (°C)", min_value=float(lo), max_value=float(hi), value=(float(lo), float(hi)), step=1.0)
    st.markdown("---")
    st.markdown("### Display")
    show_outliers = st.checkbox("Show outliers", value=True)
    series_visible = st.checkbox("Show humidity series", value=True)
    scale_type = st.radio("Scale", ["linear", "log"], horizontal=True)

state.update_filters(
    {
        "year": year,
        "month": month,
        "country": country,
        "temp_min": temp_range[0],
        "temp_max": temp_range[1],
        "show_outliers": show_outliers,
        "series_visible": series_visible,
        "scale_type": scale_type,
    }
)

# ----- Header KPIs -----
stats = state.weather_stats
summary = filtered_summary(state.filtered)
cols = st.columns(5)
cols[0].metric("Records", f"{summary['count']:,}")
cols[1].metric("Countries", stats["total_countries"])
cols[2].metric("Avg temperature", f"{stats['avg_temperature']:.1f}°C")
cols[3].metric("Avg humidity", f"{stats['avg_humidity']:.1f}%")
cols[4].metric(
    "Temperature range",
    f"{stats['temperature_range']['min']:.0f}° / {stats['temperature_range']['max']:.0f}°",
)
st.markdown(f"<div class='chip-row'>{filter_chips(describe_active_filters(state.filters))}</div>", unsafe_allow_html=True)

for rec in state.recommendations():
    st.info(rec["message"])
for degraded in state.degradations:
    st.warning(f"{degraded.chart} chart unavailable: {degraded.error}")

# ----- Charts -----
tabs = st.tabs([name for name, _ in CHART_TABS])
for tab, (_, chart_types) in zip(tabs, CHART_TABS):
    with tab:
        pairs = [chart_types[i : i + 2] for i in range(0, len(chart_types), 2)]
        for pair in pairs:
            chart_cols = st.columns(2)
            for col, chart_type in zip(chart_cols, pair):
                with col:
                    render_chart(state, chart_type)

# ----- Exports -----
st.markdown("---")
top_conditions: Optional[pd.DataFrame] = pd.DataFrame(stats["top_conditions"]) if stats["top_conditions"] else None
left, right = st.columns([2, 1])
with left:
    with card("Dataset"):
        st.caption(dataset_info(metadata))
        if top_conditions is not None:
            st.dataframe(top_conditions, hide_index=True, use_container_width=True)
with right:
    with card("Export"):
        now = datetime.now()
        st.download_button(
            "Filtered data (CSV)",
            data=export_csv(state.filtered).encode("utf-8"),
            file_name=export_filename("weather_data", "csv", now),
            mime="text/csv",
        )
        st.download_button(
            "Report (Markdown)",
            data=build_report(state.filtered, state.filters, now).encode("utf-8"),
            file_name=export_filename("weather_report", "md", now),
            mime="text/markdown",
        )
        st.download_button(
            "Dashboard state (JSON)",
            data=state.export_state().encode("utf-8"),
            file_name=export_filename("weather_state", "json", now),
            mime="application/json",
        )
