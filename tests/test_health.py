"""
tests/test_health.py -- Integration tests for GET /health and GET /.

Covers:
  - 200 response with status, message, version, timestamp and components
  - components.profile_store reports 'ok' while the store answers, 'error' otherwise
  - No authentication required
  - Index lists the public endpoints
"""

from __future__ import annotations


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api.client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["message"] == "Server is running"
    assert "version" in data
    assert data["timestamp"]
    assert data["components"]["app"] == "ok"
    assert data["components"]["profile_store"] == "ok"


def test_health_reports_unreachable_profile_store(api, monkeypatch):
    """A failing store ping is reported, not raised."""
    monkeypatch.setattr(api.store, "ping", lambda: False)
    data = api.client.get("/health").json()
    assert data["status"] == "ok"
    assert data["components"]["profile_store"] == "error"


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any authentication headers."""
    resp = api.client.get("/health", headers={})
    assert resp.status_code == 200


def test_index_lists_endpoints(api):
    resp = api.client.get("/")
    assert resp.status_code == 200
    endpoints = resp.json()["endpoints"]
    assert endpoints["register"] == "POST /api/register"
    assert endpoints["upload"].startswith("POST /api/documents/upload")
    assert endpoints["adminDashboard"].startswith("GET /api/admin/dashboard")
