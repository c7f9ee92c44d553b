"""
Tests for the health endpoint.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.main import app


async def get_health():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get("/health")


@pytest.mark.asyncio
async def test_health_ok():
    with patch("app.main.check_db_health", AsyncMock(return_value=True)), \
         patch("app.main.check_redis_health", AsyncMock(return_value=True)):
        response = await get_health()

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["redis"] == "connected"


@pytest.mark.asyncio
async def test_health_reports_unreachable_redis():
    with patch("app.main.check_db_health", AsyncMock(return_value=True)), \
         patch("app.main.check_redis_health", AsyncMock(return_value=False)):
        response = await get_health()

    assert response.status_code == 503
    assert response.json()["redis"] == "disconnected"
