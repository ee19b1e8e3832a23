"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' when the store answers
  - components.database reports 'error' (still 200) when the store is down
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_reports_database_error(api, monkeypatch):
    """A failing ping is reported in components rather than as a 500."""

    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(api.store, "ping", broken_ping)
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["components"]["database"] == "error"
