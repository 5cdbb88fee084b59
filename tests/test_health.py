"""Smoke tests for the health endpoints."""
from __future__ import annotations

from handykonnect import create_app


def test_health_endpoint() -> None:
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"})
    client = app.test_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_db_health_ok(client) -> None:
    response = client.get("/db-health")

    assert response.status_code == 200
    assert response.get_json() == {"database": "ok"}


def test_unknown_token_is_unauthorized(client) -> None:
    response = client.get("/bookings", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"
