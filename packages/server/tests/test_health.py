"""
Health and readiness endpoint tests.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient, ASGITransport
from app.main import app


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _engine(fail: bool = False) -> MagicMock:
    engine = MagicMock()
    conn = engine.connect.return_value.__aenter__.return_value
    conn.execute = AsyncMock(side_effect=OSError("connection refused") if fail else None)
    return engine


def _redis(fail: bool = False) -> AsyncMock:
    redis = AsyncMock()
    redis.ping = AsyncMock(side_effect=OSError("connection refused") if fail else None)
    return redis


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client: AsyncClient):
    """Ready endpoint reports ok once the database and Redis answer."""
    with patch("app.main.engine", _engine()), patch("app.main.get_redis", return_value=_redis()):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok", "redis": "ok"}}


@pytest.mark.asyncio
async def test_ready_check_database_down(client: AsyncClient):
    with patch("app.main.engine", _engine(fail=True)), patch("app.main.get_redis", return_value=_redis()):
        response = await client.get("/ready")
    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "NOT_READY"
    assert error["status"] == 503
    assert "database" in error["message"]


@pytest.mark.asyncio
async def test_ready_check_redis_down(client: AsyncClient):
    with patch("app.main.engine", _engine()), patch("app.main.get_redis", return_value=_redis(fail=True)):
        response = await client.get("/ready")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/orgs/{orgSlug}/projects/{projectId}/issues" in data["endpoints"]
