from __future__ import annotations

from fastapi.testclient import TestClient

from study_scheduler.main import app


def test_health_endpoint_reports_cutoff(database) -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "legacy_model_cutoff": "2026-01-01T00:00:00+00:00"}


def test_database_health_endpoint_success(database) -> None:
    client = TestClient(app)
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["dialect"] == "sqlite"
    assert "pool" in payload


def test_database_health_endpoint_failure(monkeypatch) -> None:
    client = TestClient(app)

    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("study_scheduler.main.check_database", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
