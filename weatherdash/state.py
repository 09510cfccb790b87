from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from weatherdash.aggregation import AggregationEngine, ChartType
from weatherdash.errors import AggregationDegradation, ObserverError
from weatherdash.filters import FilterEngine, FilterState, count_active_filters, normalize_filters
from weatherdash.metrics_statistics import compute_weather_stats, empty_weather_stats

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.3
DEFAULT_SECTION = "overview"
METADATA_EXPORT_KEYS = ("total_rows", "total_columns", "loaded_at", "special_info")


class EventKind(str, Enum):
    DATASET = "dataset"
    FILTERS = "filters"
    CHARTS = "charts"
    UI = "ui"
    CONNECTIVITY = "connectivity"
    RESET = "reset"


Observer = Callable[[EventKind, Any, "DashboardState"], None]


@dataclass
class UIState:
    current_section: str = DEFAULT_SECTION
    loading: bool = False
    loading_message: str = ""
    error: Optional[str] = None
    online: bool = True


@dataclass
class _Subscription:
    callback: Observer
    kind: Optional[EventKind] = None


def _observer_name(callback: Callable[..., Any]) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class DashboardState:
    """Canonical dataset / filter / derived-data state plus change notification.

    Observers are called synchronously in subscription order. One that raises
    is logged and recorded in ``observer_errors``; delivery continues.
    """

    def __init__(
        self,
        filter_engine: Optional[FilterEngine] = None,
        aggregation: Optional[AggregationEngine] = None,
    ) -> None:
        self.filter_engine = filter_engine or FilterEngine()
        self.aggregation = aggregation or AggregationEngine()
        self.dataset: Optional[pd.DataFrame] = None
        self.metadata: Optional[Dict[str, Any]] = None
        self.filtered: Optional[pd.DataFrame] = None
        self.weather_stats: Dict[str, Any] = empty_weather_stats()
        self.charts: Dict[ChartType, Any] = {}
        self.degradations: List[AggregationDegradation] = []
        self.observer_errors: List[ObserverError] = []
        self.ui = UIState()
        self._observers: List[_Subscription] = []

    @property
    def filters(self) -> FilterState:
        return self.filter_engine.filters

    # ---------------- Dataset / filters ----------------
    def set_dataset(
        self,
        df: pd.DataFrame,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        adopt_temperature_range: bool = True,
    ) -> None:
        self.dataset = df
        self.metadata = metadata
        if adopt_temperature_range and metadata:
            self.filter_engine.adopt_temperature_range(metadata.get("special_info", {}).get("temperature_range"))
        self.filtered = df
        self.weather_stats = compute_weather_stats(df)
        self._recompute_charts()
        logger.info("Dataset installed: %d records", 0 if df is None else len(df))
        self.notify(EventKind.DATASET, {"records": 0 if df is None else len(df), "metadata": metadata})

    def update_filters(self, changes: Union[FilterState, Dict[str, Any]]) -> FilterState:
        """Merge ``changes``, refilter, recompute stats and charts, then notify filters and charts."""
        filters = self.filter_engine.update(changes)
        if self.dataset is not None:
            self.filtered = self.filter_engine.apply(self.dataset)
            self.weather_stats = compute_weather_stats(self.filtered)
        self.notify(EventKind.FILTERS, filters)
        self.refresh_charts()
        return filters

    def reset_filters(self) -> FilterState:
        self.filter_engine.reset()
        if self.metadata:
            self.filter_engine.adopt_temperature_range(self.metadata.get("special_info", {}).get("temperature_range"))
        return self.update_filters(self.filter_engine.filters)

    def _recompute_charts(self) -> None:
        if self.filtered is None:
            self.charts, self.degradations = {}, []
            return
        self.charts, self.degradations = self.aggregation.compute_all(self.filtered)

    def refresh_charts(self) -> Dict[ChartType, Any]:
        self._recompute_charts()
        self.notify(EventKind.CHARTS, self.charts)
        return self.charts

    # ---------------- Observers ----------------
    def subscribe(self, callback: Observer, kind: Optional[EventKind] = None) -> None:
        if not callable(callback):
            raise TypeError("observer must be callable")
        self._observers.append(_Subscription(callback, EventKind(kind) if kind is not None else None))

    def unsubscribe(self, callback: Observer) -> bool:
        before = len(self._observers)
        self._observers = [s for s in self._observers if s.callback != callback]
        return len(self._observers) != before

    def notify(self, kind: EventKind, payload: Any = None) -> None:
        for subscription in list(self._observers):
            if subscription.kind is not None and subscription.kind != kind:
                continue
            try:
                subscription.callback(kind, payload, self)
            except Exception as exc:
                name = _observer_name(subscription.callback)
                logger.exception("Observer %s failed on %s event", name, kind.value)
                self.observer_errors.append(ObserverError(observer=name, event=kind.value, error=str(exc)))

    # ---------------- UI ----------------
    def set_current_section(self, section: str) -> None:
        self.ui.current_section = section
        self.notify(EventKind.UI, {"current_section": section})

    def set_loading(self, loading: bool, message: str = "") -> None:
        self.ui.loading = loading
        self.ui.loading_message = message if loading else ""
        self.notify(EventKind.UI, {"loading": loading, "message": self.ui.loading_message})

    def set_error(self, error: Union[str, BaseException]) -> None:
        self.ui.error = str(error)
        self.ui.loading = False
        self.notify(EventKind.UI, {"error": self.ui.error})

    def clear_error(self) -> None:
        self.ui.error = None
        self.notify(EventKind.UI, {"error": None})

    def set_connectivity(self, online: bool) -> None:
        self.ui.online = online
        if online:
            logger.info("Connection restored")
        else:
            logger.warning("Connection lost, working with cached data")
        self.notify(EventKind.CONNECTIVITY, {"online": online})

    def reset(self) -> None:
        """Back to startup defaults; observers stay subscribed."""
        self.dataset = None
        self.metadata = None
        self.filtered = None
        self.filter_engine.reset()
        self.weather_stats = empty_weather_stats()
        self.charts = {}
        self.degradations = []
        self.ui = UIState()
        self.notify(EventKind.RESET, None)

    # ---------------- Import / export ----------------
    def export_state(self) -> str:
        metadata = None
        if self.metadata:
            metadata = {key: self.metadata.get(key) for key in METADATA_EXPORT_KEYS}
        document = {
            "filters": asdict(self.filters),
            "ui": {"current_section": self.ui.current_section},
            "weather_stats": self.weather_stats,
            "metadata": metadata,
        }
        return json.dumps(document, indent=2, default=str)

    def import_state(self, state_json: str) -> bool:
        try:
            document = json.loads(state_json)
            if not isinstance(document, dict):
                raise ValueError("state document must be a JSON object")
            filters = document.get("filters")
            ui = document.get("ui")
            if filters is not None and not isinstance(filters, dict):
                raise ValueError("'filters' must be a JSON object")
            if ui is not None and not isinstance(ui, dict):
                raise ValueError("'ui' must be a JSON object")
        except (TypeError, ValueError):
            logger.exception("Could not import dashboard state")
            self.set_error("Could not import the dashboard configuration")
            return False

        if filters is not None:
            self.update_filters(normalize_filters(filters))
        section = (ui or {}).get("current_section")
        if section:
            self.set_current_section(str(section))
        logger.info("Dashboard state imported")
        return True

    # ---------------- Diagnostics ----------------
    def stats(self) -> Dict[str, Any]:
        return {
            "has_dataset": self.dataset is not None,
            "dataset_size": 0 if self.dataset is None else int(len(self.dataset)),
            "filtered_size": 0 if self.filtered is None else int(len(self.filtered)),
            "active_filters": count_active_filters(self.filters),
            "current_section": self.ui.current_section,
            "is_loading": self.ui.loading,
            "has_error": self.ui.error is not None,
            "online": self.ui.online,
            "observers_count": len(self._observers),
            "degraded_charts": [d.chart for d in self.degradations],
            "observer_errors": len(self.observer_errors),
            "weather_stats": self.weather_stats,
        }

    def recommendations(self) -> List[Dict[str, str]]:
        if self.filtered is None or self.filtered.empty:
            return []
        out: List[Dict[str, str]] = []
        avg = self.weather_stats["avg_temperature"]
        if avg > 30:
            out.append({
                "type": "temperature",
                "message": "High temperatures detected. Consider filtering to colder regions.",
                "action": "filter_temperature",
            })
        elif avg < 0:
            out.append({
                "type": "temperature",
                "message": "Very low temperatures. Explore regions with a warmer climate.",
                "action": "filter_temperature",
            })
        if self.weather_stats["total_countries"] > 50:
            out.append({
                "type": "geography",
                "message": "Many countries in the analysis. Consider filtering by a specific region.",
                "action": "filter_country",
            })
        if len(self.filtered) < 100:
            out.append({
                "type": "data",
                "message": "Few records left after filtering. Consider widening the criteria.",
                "action": "expand_filters",
            })
        return out


class FilterChangeDebouncer:
    """Coalesces rapid filter changes into one ``update_filters`` call.

    Only one request is ever pending: each ``submit`` merges into it, bumps
    the request token and restarts the timer. Must be used from inside a
    running event loop.
    """

    def __init__(self, state: DashboardState, delay: float = DEBOUNCE_SECONDS) -> None:
        self.state = state
        self.delay = delay
        self._pending: Optional[Dict[str, Any]] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._token = 0
        self.last_applied_token = 0

    @property
    def pending(self) -> Optional[Dict[str, Any]]:
        return dict(self._pending) if self._pending is not None else None

    @property
    def token(self) -> int:
        return self._token

    def submit(self, changes: Union[FilterState, Dict[str, Any]]) -> int:
        if isinstance(changes, FilterState):
            changes = asdict(changes)
        self._pending = {**(self._pending or {}), **changes}
        self._token += 1
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._flush, self._token)
        return self._token

    def _flush(self, token: int) -> None:
        if token != self._token or self._pending is None:
            return
        changes, self._pending, self._handle = self._pending, None, None
        try:
            self.state.update_filters(changes)
        except Exception as exc:
            logger.exception("Debounced filter update failed")
            self.state.set_error(exc)
            return
        self.last_applied_token = token

    def flush_now(self) -> Optional[FilterState]:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is None:
            return None
        self._flush(self._token)
        return self.state.filters

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = None
