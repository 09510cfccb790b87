from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
import json
import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import DatasetUploadModel, DebouncedFilterResponse, FilterChangesModel, FilterStateModel, StateImportModel
from weatherdash.aggregation import CHART_CONTAINERS, parse_chart_type
from weatherdash.dashboard import WeatherDashboard
from weatherdash.data import dataset_info
from weatherdash.errors import DashboardError, LoadError, ValidationError
from weatherdash.export import build_report, export_csv, export_filename
from weatherdash.filters import count_active_filters, describe_active_filters, filter_options, filtered_summary

logger = logging.getLogger(__name__)

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "html": "text/html",
    "svg": "image/svg+xml",
    "png": "image/png",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    dashboard = WeatherDashboard()
    app.state.dashboard = dashboard
    try:
        await dashboard.initialize()
    except DashboardError:
        logger.warning("API started without a dataset; POST /reload or /dataset to retry")
    yield
    dashboard.debouncer.cancel()


app = FastAPI(title="Weather Dashboard API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, name: str) -> JSONResponse:
    if isinstance(exc, ValidationError):
        return JSONResponse(status_code=422, content={"error": str(exc), "type": type(exc).__name__, "retry": False})
    if isinstance(exc, LoadError):
        return JSONResponse(status_code=503, content={"error": str(exc), "type": type(exc).__name__, "retry": True})
    logger.exception("%s failed", name)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": message, "type": "NotFound"})


def _dashboard() -> WeatherDashboard:
    return app.state.dashboard


def _require_dataset(dashboard: WeatherDashboard) -> None:
    if dashboard.state.dataset is None:
        raise LoadError(dashboard.state.ui.error or "No dataset loaded")


# Handlers are async so every DashboardState mutation runs on the event loop,
# the same thread the debouncer flushes on.

# ---------------- Metadata ----------------
@app.get("/meta/columns")
async def meta_columns():
    try:
        dashboard = _dashboard()
        _require_dataset(dashboard)
        metadata = dashboard.state.metadata or {}
        return _json(
            {
                "numerical": metadata.get("numerical_columns", []),
                "categorical": metadata.get("categorical_columns", []),
                "column_stats": metadata.get("column_stats", {}),
                "info": dataset_info(metadata),
            }
        )
    except Exception as exc:
        return _error(exc, "meta_columns")


@app.get("/meta/countries")
async def meta_countries():
    try:
        dashboard = _dashboard()
        _require_dataset(dashboard)
        return _json({"countries": filter_options(dashboard.state.metadata)["countries"]})
    except Exception as exc:
        return _error(exc, "meta_countries")


@app.get("/meta/years")
async def meta_years():
    try:
        dashboard = _dashboard()
        _require_dataset(dashboard)
        return _json({"years": filter_options(dashboard.state.metadata)["years"]})
    except Exception as exc:
        return _error(exc, "meta_years")


@app.get("/stats")
async def stats():
    try:
        state = _dashboard().state
        return _json(
            {
                "weather_stats": state.weather_stats,
                "filtered": filtered_summary(state.filtered),
                "recommendations": state.recommendations(),
            }
        )
    except Exception as exc:
        return _error(exc, "stats")


# ---------------- Filters ----------------
def _filters_payload(dashboard: WeatherDashboard) -> dict:
    filters = dashboard.state.filters
    return {
        "filters": FilterStateModel(**asdict(filters)).model_dump(),
        "description": describe_active_filters(filters),
        "active": count_active_filters(filters),
        "options": filter_options(dashboard.state.metadata),
        "summary": filtered_summary(dashboard.state.filtered),
    }


@app.get("/filters")
async def get_filters():
    try:
        return _json(_filters_payload(_dashboard()))
    except Exception as exc:
        return _error(exc, "get_filters")


@app.post("/filters")
async def update_filters(changes: FilterChangesModel):
    try:
        dashboard = _dashboard()
        dashboard.debouncer.cancel()
        dashboard.state.update_filters(changes.model_dump(exclude_unset=True))
        return _json(_filters_payload(dashboard))
    except Exception as exc:
        return _error(exc, "update_filters")


@app.post("/filters/debounced")
async def update_filters_debounced(changes: FilterChangesModel):
    try:
        debouncer = _dashboard().debouncer
        token = debouncer.submit(changes.model_dump(exclude_unset=True))
        response = DebouncedFilterResponse(token=token, pending=debouncer.pending or {}, delay_seconds=debouncer.delay)
        return _json(response.model_dump(), status_code=202)
    except Exception as exc:
        return _error(exc, "update_filters_debounced")


@app.post("/filters/reset")
async def reset_filters():
    try:
        dashboard = _dashboard()
        dashboard.debouncer.cancel()
        dashboard.state.reset_filters()
        return _json(_filters_payload(dashboard))
    except Exception as exc:
        return _error(exc, "reset_filters")


# ---------------- Charts ----------------
@app.get("/charts")
async def charts():
    try:
        state = _dashboard().state
        return _json(
            {
                "charts": {chart_type.value: payload for chart_type, payload in state.charts.items()},
                "degradations": [asdict(d) for d in state.degradations],
            }
        )
    except Exception as exc:
        return _error(exc, "charts")


@app.get("/charts/{chart_type}")
async def chart(chart_type: str):
    try:
        try:
            kind = parse_chart_type(chart_type)
        except ValueError:
            return _not_found(f"Unknown chart type: {chart_type}")
        found, payload = _dashboard().chart_data(kind)
        if not found:
            return _not_found(f"No data for chart: {kind.value}")
        return _json({"chart": kind.value, "container": CHART_CONTAINERS[kind], "data": payload})
    except Exception as exc:
        return _error(exc, "chart")


@app.get("/charts/{chart_type}/spec")
async def chart_spec(chart_type: str, format: str = Query(default="json")):
    try:
        try:
            kind = parse_chart_type(chart_type)
        except ValueError:
            return _not_found(f"Unknown chart type: {chart_type}")
        fmt = format.lower()
        if fmt not in EXPORT_MEDIA_TYPES:
            return JSONResponse(status_code=400, content={"error": f"Unsupported format: {format}", "type": "ValueError"})
        try:
            exported = _dashboard().renderer.export_image(CHART_CONTAINERS[kind], fmt)
        except KeyError:
            return _not_found(f"Chart not rendered: {kind.value}")
        if fmt == "json":
            return _json(json.loads(exported))
        return Response(content=exported, media_type=EXPORT_MEDIA_TYPES[fmt])
    except Exception as exc:
        return _error(exc, "chart_spec")


# ---------------- Dataset ----------------
@app.post("/dataset")
async def replace_dataset(upload: DatasetUploadModel):
    try:
        df = pd.DataFrame([record.model_dump(exclude_unset=True) for record in upload.records])
        metadata = await _dashboard().replace_dataset(df, upload.source)
        return _json({"loaded": int(metadata["total_rows"]), "special_info": metadata["special_info"]})
    except Exception as exc:
        return _error(exc, "replace_dataset")


@app.post("/reload")
async def reload():
    try:
        dashboard = _dashboard()
        await dashboard.reload()
        return _json({"loaded": int(len(dashboard.state.dataset)), "info": dataset_info(dashboard.state.metadata)})
    except Exception as exc:
        return _error(exc, "reload")


# ---------------- Export / state ----------------
@app.get("/export/csv")
async def export_data_csv():
    try:
        state = _dashboard().state
        _require_dataset(_dashboard())
        csv_bytes = export_csv(state.filtered).encode("utf-8")
        filename = export_filename("weather_data", "csv")
        return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
    except Exception as exc:
        return _error(exc, "export_data_csv")


@app.get("/export/report")
async def export_report():
    try:
        state = _dashboard().state
        _require_dataset(_dashboard())
        report = build_report(state.filtered, state.filters)
        filename = export_filename("weather_report", "md")
        return Response(
            content=report.encode("utf-8"),
            media_type="text/markdown",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except Exception as exc:
        return _error(exc, "export_report")


@app.get("/state")
async def export_state():
    try:
        return _json(json.loads(_dashboard().state.export_state()))
    except Exception as exc:
        return _error(exc, "export_state")


@app.post("/state")
async def import_state(body: StateImportModel):
    try:
        state = _dashboard().state
        if not state.import_state(json.dumps(body.state)):
            return JSONResponse(status_code=422, content={"error": state.ui.error, "type": "ValueError", "retry": False})
        return _json(json.loads(state.export_state()))
    except Exception as exc:
        return _error(exc, "import_state")


@app.get("/diagnostics")
async def diagnostics():
    try:
        return _json(_dashboard().diagnostics())
    except Exception as exc:
        return _error(exc, "diagnostics")
