from fastapi.testclient import TestClient

from gateway.core.config import settings


def test_health(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": settings.PROJECT_NAME}


def test_metrics_exposes_request_counters(client: TestClient) -> None:
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "http_requests_total" in r.text
    assert "upstream_requests_total" in r.text
