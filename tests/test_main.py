from __future__ import annotations

from fastapi.testclient import TestClient

from pathway_progress.main import app


def test_app_metadata() -> None:
    assert app.title == "pathway-progress-service"


def test_routers_are_mounted() -> None:
    paths = {route.path for route in app.routes}
    assert {
        "/health",
        "/ready",
        "/metrics",
        "/v1/curriculum/pathways",
        "/v1/progress/signals",
        "/v1/progress/enrollments/{enrollment_id}",
        "/v1/overrides/enrollments/{enrollment_id}/activities/{activity_id}",
    } <= paths


def test_lifespan_runs_without_backing_services() -> None:
    with TestClient(app) as client:
        assert client.get("/health").json()["status"] == "ok"
