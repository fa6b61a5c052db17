"""Tests for the service-level endpoints."""

from unittest.mock import AsyncMock

from httpx import AsyncClient

from taskflow.models import User


async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "Taskflow Realtime API"


async def test_health_reports_hub_state(client: AsyncClient, connect, member: User):
    await connect(member)

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["websocket"] == {"connections": 1, "rooms": 1, "online_users": 1}


async def test_health_degraded_when_database_down(client: AsyncClient, hub, monkeypatch):
    monkeypatch.setattr(hub.gateway, "ping", AsyncMock(return_value=False))

    response = await client.get("/health")

    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unreachable"
