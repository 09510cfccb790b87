"""Tests for filter normalization, application and quantiles."""

from __future__ import annotations

import json

import pandas as pd
import pytest

from weatherdash.filters import (
    ALL,
    FilterEngine,
    FilterState,
    apply_filters,
    count_active_filters,
    describe_active_filters,
    export_filters,
    filter_options,
    filter_suggestions,
    filtered_summary,
    import_filters,
    merge_filters,
    normalize_filters,
    outlier_bounds,
    quantile,
    text_column,
)


def _frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"country": "Spain", "year": 2024, "month": 1, "temperature_celsius": 10.0, "humidity": 50, "condition_text": "Sunny"},
            {"country": "Spain", "year": 2024, "month": 2, "temperature_celsius": 12.0, "humidity": 60, "condition_text": "Sunny"},
            {"country": "France", "year": 2023, "month": 1, "temperature_celsius": 8.0, "humidity": 70, "condition_text": "Mist"},
            {"country": "France", "year": 2024, "month": 7, "temperature_celsius": 25.0, "humidity": 40, "condition_text": "Clear"},
            {"country": "Norway", "year": 2024, "month": 1, "temperature_celsius": -5.0, "humidity": 80, "condition_text": "Snow"},
        ]
    )


# ---------------------------------------------------------------------------
# Quantiles


def test_quantile_extremes_and_median() -> None:
    values = [3.0, 1.0, 2.0]
    assert quantile(values, 0.0) == 1.0
    assert quantile(values, 1.0) == 3.0
    assert quantile(values, 0.5) == 2.0


def test_quantile_interpolates_between_neighbours() -> None:
    assert quantile([4.0, 1.0, 3.0, 2.0], 0.25) == pytest.approx(1.75)


def test_quantile_does_not_sort_input_in_place() -> None:
    values = [3.0, 1.0, 2.0]
    quantile(values, 0.5)
    assert values == [3.0, 1.0, 2.0]


def test_quantile_rejects_empty_and_out_of_range() -> None:
    with pytest.raises(ValueError):
        quantile([], 0.5)
    with pytest.raises(ValueError):
        quantile([1.0], 1.5)


def test_outlier_bounds_use_iqr_factor() -> None:
    lower, upper = outlier_bounds([10.0, 11.0, 12.0, 13.0, 100.0])
    assert lower == pytest.approx(8.0)
    assert upper == pytest.approx(16.0)


# ---------------------------------------------------------------------------
# Normalization


def test_normalize_filters_defaults() -> None:
    assert normalize_filters({}) == FilterState()


def test_normalize_filters_coerces_numeric_strings() -> None:
    f = normalize_filters({"year": "2024", "month": 3.0, "country": " "})
    assert f.year == 2024
    assert f.month == 3
    assert f.country == ALL


def test_normalize_filters_collapses_swapped_range() -> None:
    both = normalize_filters({"temp_min": 40, "temp_max": 10})
    assert (both.temp_min, both.temp_max) == (10.0, 10.0)

    only_min = normalize_filters({"temp_min": 60})
    assert (only_min.temp_min, only_min.temp_max) == (60.0, 60.0)


def test_normalize_filters_unknown_scale_defaults_to_linear() -> None:
    assert normalize_filters({"scale_type": "cubic"}).scale_type == "linear"
    assert normalize_filters({"scale_type": "LOG"}).scale_type == "log"


def test_merge_filters_keeps_untouched_fields() -> None:
    current = FilterState(country="Spain", temp_min=0.0)
    merged = merge_filters(current, {"year": 2024})
    assert merged.country == "Spain"
    assert merged.temp_min == 0.0
    assert merged.year == 2024


# ---------------------------------------------------------------------------
# Application


def test_default_filters_return_dataset_unchanged() -> None:
    df = _frame()
    out = apply_filters(df, FilterState())
    assert len(out) == len(df)
    assert list(out.index) == list(df.index)


def test_apply_filters_does_not_mutate_input() -> None:
    df = _frame()
    before = df.copy()
    apply_filters(df, FilterState(country="Spain", show_outliers=False))
    pd.testing.assert_frame_equal(df, before)


def test_categorical_predicates_are_anded() -> None:
    df = _frame()
    out = apply_filters(df, normalize_filters({"year": "2024", "country": "France"}))
    assert out["temperature_celsius"].tolist() == [25.0]


def test_temperature_range_is_inclusive() -> None:
    out = apply_filters(_frame(), FilterState(temp_min=8.0, temp_max=12.0))
    assert sorted(out["temperature_celsius"].tolist()) == [8.0, 10.0, 12.0]


def test_outlier_pass_runs_on_filtered_rows() -> None:
    df = pd.DataFrame({"country": ["X"] * 5, "temperature_celsius": [10.0, 11.0, 12.0, 13.0, 100.0]})
    dropped = apply_filters(df, FilterState(temp_max=200.0, show_outliers=False))
    assert dropped["temperature_celsius"].tolist() == [10.0, 11.0, 12.0, 13.0]

    ranged = apply_filters(df, FilterState(temp_max=12.0, show_outliers=False))
    assert ranged["temperature_celsius"].tolist() == [10.0, 11.0, 12.0]


@pytest.mark.parametrize(
    "filters",
    [
        FilterState(),
        FilterState(country="Spain"),
        FilterState(year=2024, month=1),
        FilterState(temp_min=0.0, temp_max=12.0),
        FilterState(country="Nowhere"),
    ],
)
def test_apply_filters_is_an_idempotent_subset(filters: FilterState) -> None:
    df = _frame()
    once = apply_filters(df, filters)
    twice = apply_filters(once, filters)

    assert once.index.isin(df.index).all()
    pd.testing.assert_frame_equal(once, df.loc[once.index])
    pd.testing.assert_frame_equal(twice, once)


def test_outlier_pass_is_not_idempotent_when_bounds_tighten() -> None:
    temps = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 14.0, 40.0]
    df = pd.DataFrame({"country": ["X"] * len(temps), "temperature_celsius": temps})
    filters = FilterState(show_outliers=False)

    once = apply_filters(df, filters)
    assert once["temperature_celsius"].tolist() == temps[:-1]

    # The IQR is recomputed on the smaller sample, so 14 now falls outside it.
    twice = apply_filters(once, filters)
    assert twice["temperature_celsius"].tolist() == temps[:-2]
    assert twice.index.isin(once.index).all()


def test_apply_filters_empty_dataset() -> None:
    assert apply_filters(pd.DataFrame(), FilterState()).empty


def test_filter_engine_adopts_dataset_range() -> None:
    engine = FilterEngine()
    engine.adopt_temperature_range({"min": -3.2, "max": 27.8})
    assert (engine.filters.temp_min, engine.filters.temp_max) == (-4.0, 28.0)
    engine.reset()
    assert engine.filters == FilterState()


def test_text_column_defaults_missing_values() -> None:
    df = pd.DataFrame({"country": ["Spain", None, ""]})
    assert text_column(df, "country").tolist() == ["Spain", "Unknown", "Unknown"]
    assert text_column(df, "condition_text").tolist() == ["Unknown"] * 3


# ---------------------------------------------------------------------------
# Descriptions / summaries


def test_describe_active_filters() -> None:
    assert describe_active_filters(FilterState()) == "No active filters"
    text = describe_active_filters(FilterState(month=3, country="Spain"))
    assert text == "Month: March, Country: Spain"


def test_count_active_filters() -> None:
    assert count_active_filters(FilterState()) == 0
    assert count_active_filters(FilterState(year=2024, show_outliers=False)) == 2


def test_filtered_summary() -> None:
    summary = filtered_summary(_frame())
    assert summary["count"] == 5
    assert summary["avg_temperature"] == 10.0
    assert summary["countries"] == 3
    assert summary["conditions"] == 4
    assert filtered_summary(pd.DataFrame())["count"] == 0


def test_filter_suggestions_ties_keep_first_seen_order() -> None:
    suggestions = filter_suggestions(_frame())
    assert suggestions["top_countries"] == ["Spain", "France", "Norway"]
    assert suggestions["total_records"] == 5


def test_filter_options_from_metadata() -> None:
    metadata = {
        "column_stats": {
            "year": {"unique_values": [2024, 2023]},
            "country": {"unique_values": ["Spain", "France"]},
            "temperature_celsius": {"min": -5.5, "max": 25.2},
        }
    }
    options = filter_options(metadata)
    assert options["years"] == [2023, 2024]
    assert options["countries"] == ["France", "Spain"]
    assert options["temp_range"] == {"min": -6, "max": 26}
    assert len(options["months"]) == 12


# ---------------------------------------------------------------------------
# Import / export


def test_export_then_import_filters() -> None:
    original = FilterState(year=2024, country="Spain", scale_type="log")
    assert import_filters(export_filters(original)) == original


def test_import_filters_rejects_non_objects() -> None:
    with pytest.raises(ValueError):
        import_filters(json.dumps([1, 2]))
    with pytest.raises(ValueError):
        import_filters("{not json")


def test_filter_options_widen_a_single_temperature() -> None:
    metadata = {"column_stats": {"temperature_celsius": {"min": 20.0, "max": 20.0}}}
    assert filter_options(metadata)["temp_range"] == {"min": 20, "max": 21}
