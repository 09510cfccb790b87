from __future__ import annotations

from dataclasses import dataclass


class DashboardError(Exception):
    """Base class for errors surfaced to the dashboard initializer."""


class ValidationError(DashboardError):
    """The dataset does not meet the minimum column-type requirements."""


class LoadError(DashboardError):
    """The dataset could not be fetched or parsed."""


@dataclass(frozen=True)
class AggregationDegradation:
    """A chart transform that failed and was skipped for this update cycle."""

    chart: str
    error: str
    error_type: str


@dataclass(frozen=True)
class ObserverError:
    """A subscriber that raised while being notified."""

    observer: str
    event: str
    error: str
