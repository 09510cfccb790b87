from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from weatherdash.aggregation import CHART_DEFINITIONS, AggregationEngine, ChartType
from weatherdash.charts import AltairChartRenderer, ChartRenderer
from weatherdash.data import Source, load_dataset, prepare_dataset
from weatherdash.errors import DashboardError
from weatherdash.filters import FilterEngine
from weatherdash.state import DashboardState, EventKind, FilterChangeDebouncer

logger = logging.getLogger(__name__)


class WeatherDashboard:
    """Wires the loader, engines, state coordinator and renderer together."""

    def __init__(
        self,
        source: Optional[Source] = None,
        *,
        filter_engine: Optional[FilterEngine] = None,
        aggregation: Optional[AggregationEngine] = None,
        state: Optional[DashboardState] = None,
        renderer: Optional[ChartRenderer] = None,
        chart_pause: float = 0.0,
    ) -> None:
        self.source = source
        self.state = state or DashboardState(filter_engine or FilterEngine(), aggregation or AggregationEngine())
        self.renderer: ChartRenderer = renderer or AltairChartRenderer()
        self.debouncer = FilterChangeDebouncer(self.state)
        self.chart_pause = chart_pause
        self.initialized = False
        self._subscribed = False

    # ---------------- Lifecycle ----------------
    async def initialize(self, source: Optional[Source] = None) -> None:
        if source is not None:
            self.source = source
        self.state.set_loading(True, "Loading weather dataset...")
        try:
            df, metadata = await asyncio.to_thread(load_dataset, self.source)
        except DashboardError as exc:
            logger.exception("Dashboard initialization failed")
            self.state.set_error(exc)
            raise
        await self._install(df, metadata)

    async def reload(self) -> None:
        self.debouncer.cancel()
        self.state.clear_error()
        await self.initialize()

    async def replace_dataset(self, df: pd.DataFrame, source: str = "<upload>") -> Dict[str, Any]:
        try:
            enriched, metadata = prepare_dataset(df, source)
        except DashboardError as exc:
            self.state.set_error(exc)
            raise
        await self._install(enriched, metadata)
        return metadata

    async def _install(self, df: pd.DataFrame, metadata: Dict[str, Any]) -> None:
        self.state.set_loading(True, "Building charts...")
        self.state.set_dataset(df, metadata)
        self.renderer.clear_all()
        await self.render_charts()
        if not self._subscribed:
            self.state.subscribe(self._on_charts, EventKind.CHARTS)
            self._subscribed = True
        self.state.clear_error()
        self.state.set_loading(False)
        self.initialized = True

    # ---------------- Rendering ----------------
    async def render_charts(self) -> List[str]:
        """Render every chart in container order, pausing between charts if configured."""
        failed: List[str] = []
        for definition in CHART_DEFINITIONS:
            if definition.chart_type not in self.state.charts:
                failed.append(definition.container_id)
                continue
            ok = self.renderer.render(
                definition.container_id,
                self.state.charts[definition.chart_type],
                definition.chart_type,
                self.state.filters,
            )
            if not ok:
                failed.append(definition.container_id)
            if self.chart_pause:
                await asyncio.sleep(self.chart_pause)
        return failed

    def _on_charts(self, kind: EventKind, charts: Dict[ChartType, Any], state: DashboardState) -> None:
        for definition in CHART_DEFINITIONS:
            if definition.chart_type in charts:
                self.renderer.update(definition.container_id, charts[definition.chart_type], definition.chart_type, state.filters)
            else:
                self.renderer.clear(definition.container_id)

    # ---------------- Queries ----------------
    def chart_data(self, chart_type: ChartType) -> Tuple[bool, Any]:
        if chart_type in self.state.charts:
            return True, self.state.charts[chart_type]
        return False, None

    def diagnostics(self) -> Dict[str, Any]:
        stats = self.state.stats()
        stats.update(
            {
                "initialized": self.initialized,
                "source": None if self.source is None else str(self.source),
                "pending_filter_changes": self.debouncer.pending,
                "debounce_token": self.debouncer.token,
                "degradations": [vars(d) for d in self.state.degradations],
                "observer_errors": [vars(e) for e in self.state.observer_errors],
                "recommendations": self.state.recommendations(),
            }
        )
        return stats
