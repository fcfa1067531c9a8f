"""Tests for /_mock probe routes (liveness, health-check)."""

from collections.abc import Callable
from unittest.mock import patch

from fastapi.testclient import TestClient


def test_liveness_returns_true(client: TestClient) -> None:
    r = client.get("/_mock/liveness")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_200_when_ready(client: TestClient) -> None:
    """GET /_mock/health-check returns true when storage directories are writable."""
    r = client.get("/_mock/health-check")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_503_when_readiness_fails(client: TestClient) -> None:
    """GET /_mock/health-check returns 503 with envelope when readiness_check fails."""
    with patch(
        "mock_server.api.routes.utils.readiness_check", return_value=(False, ["redis"])
    ):
        r = client.get("/_mock/health-check")
    assert r.status_code == 503
    data = r.json()
    assert data.get("success") is False
    assert "redis" in data["data"]


def test_probe_paths_bypass_gateway(
    make_client: Callable[..., TestClient],
) -> None:
    """Probes answer even when every gateway request would need credentials."""
    client = make_client(ENVIRONMENT="production")
    assert client.get("/_mock/liveness").status_code == 200
    assert client.get("/anything").status_code == 401
