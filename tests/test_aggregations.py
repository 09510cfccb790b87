"""Tests for the per-chart aggregation transforms."""

from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd
import pytest

from weatherdash.aggregation import DEFAULT_TRANSFORMS, AggregationEngine, ChartType, parse_chart_type
from weatherdash.metrics_conditions import (
    build_condition_chord_matrix,
    condition_counts,
    rank_conditions_for_funnel,
    sample_by_top_conditions,
)
from weatherdash.metrics_geography import (
    aggregate_by_country,
    build_regional_radar_profile,
    build_sankey_flow,
    build_treemap_hierarchy,
)
from weatherdash.metrics_seasonal import group_by_monthly_average, quarterly_waterfall
from weatherdash.metrics_statistics import (
    compute_weather_stats,
    correlation_matrix,
    kernel_density_estimate,
    pareto_analysis,
    scott_bandwidth,
)
from weatherdash.regions import flow_region, radar_region


def _conditions_frame() -> pd.DataFrame:
    rows = [
        ("A", "Sunny", 20.0),
        ("A", "Rain", 12.0),
        ("B", "Sunny", 25.0),
        ("B", "Rain", 14.0),
        ("B", "Snow", -2.0),
        ("C", "Sunny", 30.0),
    ]
    return pd.DataFrame(rows, columns=["country", "condition_text", "temperature_celsius"])


# ---------------------------------------------------------------------------
# Seasonal


def test_monthly_average_zero_defaults_missing_fields() -> None:
    df = pd.DataFrame(
        [
            {"month": 1, "temperature_celsius": 10.0, "humidity": 50.0},
            {"temperature_celsius": 20.0},
            {"month": 3, "temperature_celsius": 30.0, "humidity": 70.0},
        ]
    )
    out = group_by_monthly_average(df)
    assert out["x"] == ["Mes 1", "Mes 3"]
    assert out["y1"] == pytest.approx([15.0, 30.0])
    assert out["y2"] == pytest.approx([25.0, 70.0])


def test_quarterly_waterfall_deltas_and_total() -> None:
    df = pd.DataFrame(
        [
            {"month": 1, "temperature_celsius": 10.0},
            {"month": 4, "temperature_celsius": 15.0},
            {"month": 11, "temperature_celsius": 5.0},
        ]
    )
    out = quarterly_waterfall(df)
    assert out["x"] == ["Q1", "Q2", "Q3", "Q4", "Total"]
    assert out["y"] == pytest.approx([10.0, 5.0, -15.0, 5.0, 7.5])
    assert out["measure"] == ["absolute", "relative", "relative", "relative", "total"]


def test_quarterly_waterfall_prefers_quarter_field() -> None:
    df = pd.DataFrame([{"month": 1, "quarter": 2, "temperature_celsius": 8.0}])
    assert quarterly_waterfall(df)["averages"] == [0.0, 8.0, 0.0, 0.0]


# ---------------------------------------------------------------------------
# Geography


def test_treemap_hierarchy_bands_and_labels() -> None:
    df = pd.DataFrame(
        {"country": ["A", "A", "B", "C"], "temperature_celsius": [-4.0, -6.0, 25.0, 25.0]}
    )
    out = build_treemap_hierarchy(df)
    assert out["ids"] == ["World", "Very Cold", "Very Cold/A", "Warm", "Warm/B", "Warm/C"]
    assert out["parents"] == ["", "World", "Very Cold", "World", "Warm", "Warm"]
    assert out["values"] == [3, 1, 1, 2, 1, 1]
    assert out["labels"][2] == "A (-5.0°C)"


def test_treemap_truncates_countries_per_band() -> None:
    df = pd.DataFrame({"country": [f"C{i}" for i in range(25)], "temperature_celsius": [22.0] * 25})
    out = build_treemap_hierarchy(df)
    assert out["values"][1] == 25
    assert sum(1 for parent in out["parents"] if parent == "Warm") == 20


def test_sankey_flow_counts_region_condition_pairs() -> None:
    df = pd.DataFrame(
        {
            "country": ["Spain", "Spain", "Japan", "Atlantis"],
            "condition_text": ["Sunny", "Sunny", "Rain", "Sunny"],
        }
    )
    out = build_sankey_flow(df)
    assert [n["label"] for n in out["nodes"]] == ["Europe", "Sunny", "Asia", "Rain", "Other"]
    assert out["links"] == [
        {"source": 0, "target": 1, "value": 2},
        {"source": 2, "target": 3, "value": 1},
        {"source": 4, "target": 1, "value": 1},
    ]


def test_region_policies_differ_for_the_americas() -> None:
    assert flow_region("Brazil") == "South America"
    assert flow_region("Canada") == "North America"
    assert radar_region("Brazil") == "Americas"
    assert radar_region("Nowhere") == "Other"


def test_aggregate_by_country() -> None:
    df = pd.DataFrame(
        {"country": ["B", "A", "B"], "temperature_celsius": [10.0, 5.0, 20.0], "humidity": [40.0, 50.0, 60.0]}
    )
    out = aggregate_by_country(df)
    assert out["locations"] == ["B", "A"]
    assert out["z"] == pytest.approx([15.0, 5.0])
    assert out["avg_humidity"] == pytest.approx([50.0, 50.0])
    assert out["record_count"] == [2, 1]


def test_radar_profile_normalization() -> None:
    df = pd.DataFrame(
        [{"country": "Spain", "temperature_celsius": 20.0, "humidity": 60.0, "pressure_mb": 1010.0, "wind_kph": 10.0, "uv_index": 4.0}]
    )
    out = build_regional_radar_profile(df)
    assert list(out) == ["Europe"]
    assert out["Europe"]["r"] == pytest.approx([20.0, 30.0, 1.0, 10.0, 20.0])
    assert out["Europe"]["theta"] == ["Temperature", "Humidity", "Pressure", "Wind", "UV"]


# ---------------------------------------------------------------------------
# Conditions


def test_condition_counts_break_ties_by_first_seen() -> None:
    df = pd.DataFrame({"condition_text": ["B", "A", "A", "B", "C"]})
    assert condition_counts(df).index.tolist() == ["B", "A", "C"]


def test_swarm_sampling_is_positional_and_capped() -> None:
    out = sample_by_top_conditions(_conditions_frame(), k=2, cap_per_group=2)
    assert list(out) == ["Sunny", "Rain"]
    assert out["Sunny"]["y"] == [20.0, 25.0]
    assert out["Sunny"]["x"] == ["Sunny", "Sunny"]
    assert out["Sunny"]["text"][0] == "A<br>Temp: 20°C<br>Humidity: N/A%"


def test_funnel_ranking() -> None:
    out = rank_conditions_for_funnel(_conditions_frame(), top_n=2)
    assert out == {"x": [3, 2], "y": ["Sunny", "Rain"]}


def test_chord_matrix_counts_shared_countries() -> None:
    out = build_condition_chord_matrix(_conditions_frame())
    assert out["names"] == ["Sunny", "Rain", "Snow"]
    assert out["matrix"] == [[0, 2, 1], [2, 0, 1], [1, 1, 0]]


# ---------------------------------------------------------------------------
# Correlation


def test_correlation_matrix_symmetric_with_unit_diagonal() -> None:
    df = pd.DataFrame(
        {
            "temperature_celsius": [1.0, 2.0, 3.0, 4.0],
            "humidity": [2.0, 4.0, 6.0, 8.0],
            "pressure_mb": [4.0, 3.0, 2.0, 1.0],
            "wind_kph": [5.0, 5.0, 5.0, 5.0],
            "uv_index": [1.0, None, 3.0, None],
        }
    )
    z = np.array(correlation_matrix(df)["z"])
    assert z.shape == (5, 5)
    assert np.array_equal(z, z.T)
    assert z[0, 1] == pytest.approx(1.0)
    assert z[0, 2] == pytest.approx(-1.0)
    # Zero variance scores 0, even against itself.
    assert z[3, 3] == 0.0
    assert z[0, 3] == 0.0
    # Only two complete pairs with temperature.
    assert z[4, 4] == pytest.approx(1.0)
    assert z[0, 4] == pytest.approx(1.0)


def test_correlation_matrix_needs_two_pairs() -> None:
    df = pd.DataFrame([{"temperature_celsius": 1.0, "humidity": 2.0, "pressure_mb": 3.0, "wind_kph": 4.0, "uv_index": 5.0}])
    z = np.array(correlation_matrix(df)["z"])
    assert np.all(z == 0.0)


# ---------------------------------------------------------------------------
# Pareto


def test_pareto_scenario() -> None:
    df = pd.DataFrame(
        [
            {"country": "A", "temperature_celsius": 10, "humidity": 50},
            {"country": "A", "temperature_celsius": 20, "humidity": 70},
            {"country": "B", "temperature_celsius": 0, "humidity": 90},
        ]
    )
    out = pareto_analysis(df, "country", "temperature_celsius")
    assert out["categories"] == ["A", "B"]
    assert out["values"] == pytest.approx([15.0, 0.0])
    assert out["cumulative"] == pytest.approx([100.0, 100.0])


def test_pareto_sorts_by_absolute_average_and_keeps_top_n() -> None:
    countries = [f"C{i}" for i in range(25)]
    temps = [float(i) if i % 2 else -float(i) for i in range(25)]
    df = pd.DataFrame({"country": countries, "temperature_celsius": temps})
    out = pareto_analysis(df, top_n=20)

    assert len(out["categories"]) == 20
    assert out["categories"][0] == "C24"
    assert out["values"][0] == -24.0
    assert out["cumulative"][-1] == pytest.approx(100.0)


def test_pareto_all_zero_values() -> None:
    df = pd.DataFrame({"country": ["A", "B"], "temperature_celsius": [0.0, 0.0]})
    out = pareto_analysis(df)
    assert out["percentages"] == [0.0, 0.0]
    assert out["cumulative"] == [0.0, 0.0]


# ---------------------------------------------------------------------------
# KDE


def test_kde_integrates_to_about_one() -> None:
    values = np.random.default_rng(0).normal(20.0, 5.0, 500)
    out = kernel_density_estimate(values)
    x, y = np.array(out["x"]), np.array(out["y"])

    assert len(x) == 101
    assert x[0] == pytest.approx(values.min())
    assert x[-1] == pytest.approx(values.max())
    assert np.all(y >= 0)
    area = float(np.sum((y[1:] + y[:-1]) / 2 * np.diff(x)))
    assert area == pytest.approx(1.0, abs=0.1)


def test_kde_density_formula() -> None:
    out = kernel_density_estimate([0.0, 1.0], grid_points=2)
    h = 1.06 * math.sqrt(0.5) * 2 ** (-1 / 5)
    expected = (1 + math.exp(-0.5 / h**2)) / (2 * h * math.sqrt(2 * math.pi))
    assert out["x"] == pytest.approx([0.0, 0.5, 1.0])
    assert out["y"][0] == pytest.approx(expected)
    assert out["y"][0] == pytest.approx(out["y"][2])


def test_kde_keeps_raw_values_summary_and_rug() -> None:
    values = list(range(120, 0, -1))
    out = kernel_density_estimate(values)
    assert out["raw_values"] == sorted(float(v) for v in values)
    assert out["rug"] == [1.0, 51.0, 101.0]
    assert out["summary"]["median"] == pytest.approx(60.5)
    assert out["summary"]["q1"] == pytest.approx(30.75)


def test_scott_bandwidth() -> None:
    values = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
    assert scott_bandwidth(values) == pytest.approx(1.06 * np.std(values, ddof=1) * 5 ** (-0.2))


def test_kde_degenerate_inputs() -> None:
    single = kernel_density_estimate([3.0])
    assert single["x"] == [] and single["y"] == []
    assert single["raw_values"] == [3.0]

    flat = kernel_density_estimate([2.0, 2.0, 2.0])
    assert flat["x"] == []
    assert flat["summary"]["mean"] == 2.0


def test_kde_clamps_grid_points_to_one_interval() -> None:
    out = kernel_density_estimate([0.0, 1.0, 3.0], grid_points=0)
    assert out["x"] == [0.0, 3.0]
    assert len(out["y"]) == 2
    assert all(y > 0 for y in out["y"])


# ---------------------------------------------------------------------------
# Weather stats / engine


def test_weather_stats() -> None:
    stats = compute_weather_stats(_conditions_frame())
    assert stats["total_countries"] == 3
    assert stats["temperature_range"] == {"min": -2.0, "max": 30.0}
    assert stats["top_conditions"][0] == {"condition": "Sunny", "count": 3}
    assert stats["countries"] == ["A", "B", "C"]


def test_weather_stats_empty() -> None:
    stats = compute_weather_stats(pd.DataFrame())
    assert stats["total_countries"] == 0
    assert stats["avg_temperature"] == 0.0


@pytest.mark.parametrize("chart_type", list(DEFAULT_TRANSFORMS))
def test_every_transform_accepts_empty_input(chart_type: ChartType) -> None:
    DEFAULT_TRANSFORMS[chart_type](pd.DataFrame())


def test_compute_all_contains_failing_transform(caplog: pytest.LogCaptureFixture) -> None:
    def broken(df: pd.DataFrame) -> None:
        raise RuntimeError("boom")

    engine = AggregationEngine({ChartType.PARETO: broken})
    with caplog.at_level(logging.ERROR, logger="weatherdash.aggregation"):
        results, degradations = engine.compute_all(_conditions_frame())

    assert ChartType.PARETO not in results
    assert len(results) == len(ChartType) - 1
    assert [(d.chart, d.error, d.error_type) for d in degradations] == [("pareto", "boom", "RuntimeError")]
    assert any("pareto" in record.getMessage() for record in caplog.records)


def test_parse_chart_type() -> None:
    assert parse_chart_type("kde-chart") is ChartType.KDE
    assert parse_chart_type("Heatmap") is ChartType.HEATMAP
    with pytest.raises(ValueError):
        parse_chart_type("pie")
