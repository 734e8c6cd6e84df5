"""Tests for the healthcheck endpoint."""

from __future__ import annotations


def test_health_endpoint_returns_ok(client):
    """The healthcheck reports ok together with the number of registered handlers."""

    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ok"
    assert data["handlers"] == 10
    assert data["background_jobs"] is False
