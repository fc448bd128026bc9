from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from insightsync.core.config import get_settings
from insightsync.crm.api import get_store
from insightsync.crm.repositories import build_memory_store
from insightsync.main import app


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    monkeypatch.setenv("SEED_DEMO_DATA", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    store = build_memory_store()
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_crm_metrics(client: TestClient) -> None:
    assert client.get("/health").status_code == 200
    assert client.post("/api/customers", json={"name": "Metrics Co"}).status_code == 201
    assert client.put("/api/customers/1", json={"phone": "+91 9000000000"}).status_code == 200
    assert client.get("/api/dashboard/stats").status_code == 200

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert metrics.headers["content-type"].startswith("text/plain")
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "crm_entity_mutations_total" in body
    assert "crm_activities_recorded_total" in body
    assert "crm_dashboard_compute_seconds" in body

    assert 'path="/health"' in body
    assert 'path="/api/customers/{id}"' in body
    assert 'entity_type="customer",action="create"' in body or 'action="create",entity_type="customer"' in body
    assert 'activity_type="customer_updated"' in body


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics")

    assert response.status_code == 404


def test_health_reports_service(client: TestClient) -> None:
    response = client.get("/health")

    assert response.json() == {"status": "ok", "service": "InsightSync API", "environment": "local"}
