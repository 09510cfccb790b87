"""Weather dashboard engine (UI-agnostic).

This package contains:
- dataset loading and validation (JSON records -> pandas)
- filter normalization and application
- per-chart aggregation transforms (JSON-serializable payloads)
- the state coordinator with observer notification and debouncing
- chart helpers (Altair -> Vega-Lite spec dict)
"""
