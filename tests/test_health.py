"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status and version fields
  - No authentication required
"""

from __future__ import annotations

from api.main import VERSION


def test_health_returns_200_with_version(client):
    """Health endpoint returns 200 with status and version."""
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_health_no_auth_required(client):
    """Health endpoint is accessible without any cookie or Authorization header."""
    client.cookies.clear()
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_unknown_host_rejected(client):
    """TrustedHostMiddleware rejects Host headers outside ALLOWED_HOSTS."""
    resp = client.get("/api/v1/health", headers={"Host": "evil.example"})
    assert resp.status_code == 400
