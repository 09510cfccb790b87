from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from weatherdash.errors import AggregationDegradation
from weatherdash.metrics_conditions import (
    build_condition_chord_matrix,
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
from weatherdash.metrics_statistics import correlation_matrix, pareto_analysis, temperature_density

logger = logging.getLogger(__name__)


class ChartType(str, Enum):
    COMBINED = "combined"
    WATERFALL = "waterfall"
    TREEMAP = "treemap"
    SANKEY = "sankey"
    SWARM = "swarm"
    GEO = "geo"
    FUNNEL = "funnel"
    RADAR = "radar"
    HEATMAP = "heatmap"
    RIBBON = "ribbon"
    PARETO = "pareto"
    KDE = "kde"


@dataclass(frozen=True)
class ChartDefinition:
    chart_type: ChartType
    container_id: str
    title: str
    section: str


# Render order; the first nine belong to the declarative section, the rest to the custom one.
CHART_DEFINITIONS: List[ChartDefinition] = [
    ChartDefinition(ChartType.COMBINED, "combined-chart", "Temperature and humidity by month", "standard"),
    ChartDefinition(ChartType.WATERFALL, "waterfall-chart", "Seasonal temperature changes", "standard"),
    ChartDefinition(ChartType.TREEMAP, "treemap-chart", "Countries by temperature band", "standard"),
    ChartDefinition(ChartType.SANKEY, "sankey-chart", "Region to condition flow", "standard"),
    ChartDefinition(ChartType.SWARM, "swarm-chart", "Temperature distribution by condition", "standard"),
    ChartDefinition(ChartType.GEO, "geo-chart", "Average temperature by country", "standard"),
    ChartDefinition(ChartType.FUNNEL, "funnel-chart", "Most frequent conditions", "standard"),
    ChartDefinition(ChartType.RADAR, "radar-chart", "Climate profile by region", "standard"),
    ChartDefinition(ChartType.HEATMAP, "heatmap-chart", "Weather variable correlations", "standard"),
    ChartDefinition(ChartType.RIBBON, "ribbon-chart", "Condition co-occurrence across countries", "custom"),
    ChartDefinition(ChartType.PARETO, "pareto-chart", "Pareto of average temperature by country", "custom"),
    ChartDefinition(ChartType.KDE, "kde-chart", "Temperature density", "custom"),
]
CHART_CONTAINERS: Dict[ChartType, str] = {d.chart_type: d.container_id for d in CHART_DEFINITIONS}

Transform = Callable[[pd.DataFrame], Any]

DEFAULT_TRANSFORMS: Dict[ChartType, Transform] = {
    ChartType.COMBINED: group_by_monthly_average,
    ChartType.WATERFALL: quarterly_waterfall,
    ChartType.TREEMAP: build_treemap_hierarchy,
    ChartType.SANKEY: build_sankey_flow,
    ChartType.SWARM: sample_by_top_conditions,
    ChartType.GEO: aggregate_by_country,
    ChartType.FUNNEL: rank_conditions_for_funnel,
    ChartType.RADAR: build_regional_radar_profile,
    ChartType.HEATMAP: correlation_matrix,
    ChartType.RIBBON: build_condition_chord_matrix,
    ChartType.PARETO: pareto_analysis,
    ChartType.KDE: temperature_density,
}


def parse_chart_type(value: Any) -> ChartType:
    """Accept enum members, values ("kde") or container ids ("kde-chart")."""
    if isinstance(value, ChartType):
        return value
    key = str(value).strip().lower()
    if key.endswith("-chart"):
        key = key[: -len("-chart")]
    return ChartType(key)


class AggregationEngine:
    """Runs the per-chart transforms over a (filtered) dataset."""

    def __init__(self, transforms: Optional[Dict[ChartType, Transform]] = None) -> None:
        self.transforms: Dict[ChartType, Transform] = dict(DEFAULT_TRANSFORMS)
        if transforms:
            self.transforms.update(transforms)

    def compute(self, chart_type: Any, df: pd.DataFrame) -> Any:
        return self.transforms[parse_chart_type(chart_type)](df)

    def compute_all(self, df: pd.DataFrame) -> Tuple[Dict[ChartType, Any], List[AggregationDegradation]]:
        """All chart payloads in render order; a failing transform is skipped, not fatal."""
        results: Dict[ChartType, Any] = {}
        degradations: List[AggregationDegradation] = []
        for definition in CHART_DEFINITIONS:
            transform = self.transforms.get(definition.chart_type)
            if transform is None:
                continue
            try:
                results[definition.chart_type] = transform(df)
            except Exception as exc:
                logger.exception("Chart transform failed: %s", definition.chart_type.value)
                degradations.append(
                    AggregationDegradation(
                        chart=definition.chart_type.value,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                )
        return results, degradations
