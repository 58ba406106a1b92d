"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, environment and database fields
  - database reports 'ok' when the stores answer
  - a failed database ping returns 503 with database 'error'
  - No authentication required
  - Unknown routes and wrong methods still use the error envelope
"""

from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import OperationalError
from starlette.middleware.base import BaseHTTPMiddleware

from api.main import app


def test_health_returns_200_with_database(api_client: tuple[TestClient, str, int]) -> None:
    """Health endpoint returns 200 with status, version, environment and database."""
    client, _token, _uid = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"]
    assert data["environment"] == "test"
    assert data["database"] == "ok"
    assert "timestamp" in data


def test_health_no_auth_required(api_client: tuple[TestClient, str, int]) -> None:
    """Health endpoint is accessible without any authentication headers."""
    client, _token, _uid = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_unknown_route_uses_error_envelope(api_client: tuple[TestClient, str, int]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/v1/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"


def test_wrong_method_uses_error_envelope(api_client: tuple[TestClient, str, int]) -> None:
    client, _token, _uid = api_client
    resp = client.delete("/api/v1/health")
    assert resp.status_code == 405
    assert resp.json()["error"]["code"] == "METHOD_NOT_ALLOWED"


def test_cors_preflight_allows_configured_origin(api_client: tuple[TestClient, str, int]) -> None:
    """OPTIONS preflight answers for any route with the CORS headers."""
    client, _token, _uid = api_client
    resp = client.options(
        "/api/v1/auth/login",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200
    assert "access-control-allow-origin" in resp.headers


def test_health_reports_database_failure(api_client: tuple[TestClient, str, int], monkeypatch) -> None:
    """A failing ping still yields the health payload, with 503 and database 'error'."""
    client, _token, _uid = api_client

    def failing_ping() -> bool:
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(client.app.state.content_store, "ping", failing_ping)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "unhealthy"
    assert data["database"] == "error"
    assert data["version"]


def test_cors_is_the_outermost_middleware() -> None:
    """user_middleware lists outermost first; CORS must wrap the rate limiter and request log."""
    assert [m.cls for m in app.user_middleware] == [CORSMiddleware, SlowAPIMiddleware, BaseHTTPMiddleware]
