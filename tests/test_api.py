"""Tests for the HTTP API."""

from __future__ import annotations

import inspect
from typing import Any, Dict, Iterator, List

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from api.main import app


def _records() -> List[Dict[str, Any]]:
    rows = [
        ("Spain", "Madrid", "Sunny", 24.0, 40),
        ("Spain", "Seville", "Sunny", 30.0, 35),
        ("France", "Paris", "Light rain", 14.0, 80),
        ("Japan", "Tokyo", "Partly cloudy", 18.0, 65),
        ("Brazil", "Brasilia", "Light rain", 26.0, 75),
    ]
    return [
        {
            "country": country,
            "location_name": city,
            "condition_text": condition,
            "temperature_celsius": temp,
            "humidity": humidity,
            "pressure_mb": 1010.0,
            "wind_kph": 12.0,
            "uv_index": 5.0,
            "year": 2024,
            "month": 3 + i,
        }
        for i, (country, city, condition, temp, humidity) in enumerate(rows)
    ]


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        response = test_client.post("/dataset", json={"records": _records(), "source": "test"})
        assert response.status_code == 200
        yield test_client


# ---------------------------------------------------------------------------
# Metadata / stats


def test_meta_endpoints(client: TestClient) -> None:
    assert client.get("/meta/countries").json() == {"countries": ["Brazil", "France", "Japan", "Spain"]}
    assert client.get("/meta/years").json() == {"years": [2024]}
    columns = client.get("/meta/columns").json()
    assert "temperature_celsius" in columns["numerical"]
    assert "country" in columns["categorical"]


def test_stats(client: TestClient) -> None:
    body = client.get("/stats").json()
    assert body["weather_stats"]["total_countries"] == 4
    assert body["filtered"]["count"] == 5


# ---------------------------------------------------------------------------
# Filters


def test_update_and_reset_filters(client: TestClient) -> None:
    body = client.post("/filters", json={"country": "Spain"}).json()
    assert body["filters"]["country"] == "Spain"
    assert body["summary"]["count"] == 2
    assert body["description"].startswith("Country: Spain")

    reset = client.post("/filters/reset").json()
    assert reset["filters"]["country"] == "all"
    assert reset["summary"]["count"] == 5


def test_handlers_run_on_the_event_loop() -> None:
    endpoints = [route.endpoint for route in app.routes if isinstance(route, APIRoute)]
    assert endpoints
    assert all(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)


def test_immediate_update_supersedes_pending_debounced_change(client: TestClient) -> None:
    client.post("/filters/debounced", json={"country": "France"})
    body = client.post("/filters", json={"country": "Spain"}).json()
    assert body["filters"]["country"] == "Spain"
    assert body["summary"]["count"] == 2
    assert app.state.dashboard.debouncer.pending is None


def test_debounced_filters_return_token(client: TestClient) -> None:
    response = client.post("/filters/debounced", json={"year": 2024})
    assert response.status_code == 202
    body = response.json()
    assert body["token"] == 1
    assert body["pending"] == {"year": 2024}


# ---------------------------------------------------------------------------
# Charts


def test_charts_payloads(client: TestClient) -> None:
    body = client.get("/charts").json()
    assert len(body["charts"]) == 12
    assert body["degradations"] == []

    pareto = client.get("/charts/pareto").json()
    assert pareto["container"] == "pareto-chart"
    assert pareto["data"]["categories"][0] == "Spain"


def test_unknown_chart_is_404(client: TestClient) -> None:
    assert client.get("/charts/pie").status_code == 404


def test_chart_spec(client: TestClient) -> None:
    spec = client.get("/charts/kde/spec").json()
    assert "vega-lite" in spec["$schema"]
    assert client.get("/charts/kde/spec", params={"format": "bmp"}).status_code == 400


# ---------------------------------------------------------------------------
# Dataset / export / state


def test_invalid_dataset_is_422(client: TestClient) -> None:
    response = client.post("/dataset", json={"records": [{"country": "Spain", "temperature_celsius": 20.0}]})
    assert response.status_code == 422
    assert response.json()["type"] == "ValidationError"


def test_export_csv(client: TestClient) -> None:
    response = client.get("/export/csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.splitlines()
    assert lines[0].startswith("Country,City,Temperature")
    assert len(lines) == 6


def test_export_report(client: TestClient) -> None:
    response = client.get("/export/report")
    assert response.status_code == 200
    assert "Records analyzed:** 5" in response.text


def test_state_roundtrip(client: TestClient) -> None:
    client.post("/filters", json={"country": "France"})
    exported = client.get("/state").json()
    assert exported["filters"]["country"] == "France"

    client.post("/filters/reset")
    imported = client.post("/state", json={"state": exported}).json()
    assert imported["filters"]["country"] == "France"


def test_diagnostics(client: TestClient) -> None:
    body = client.get("/diagnostics").json()
    assert body["dataset_size"] == 5
    assert body["initialized"] is True
