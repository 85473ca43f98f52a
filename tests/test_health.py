"""Tests for the app shell: health check and route registration."""

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_conversation_routes_are_mounted_under_v1():
    paths = client.get("/openapi.json").json()["paths"]
    assert "/v1/conversation" in paths
    assert "/v1/conversation/history" in paths
