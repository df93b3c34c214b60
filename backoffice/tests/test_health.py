"""
Tests for operational endpoints and infrastructure helpers:
health check, metrics, request id propagation, cache failure handling
and the store-call time bound.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient
from redis.exceptions import RedisError

from backoffice.app.core.database import bounded
from backoffice.app.core.exceptions import StoreTimeoutError
from backoffice.app.services.cache import CacheService


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_ok(client: AsyncClient, monkeypatch):
    redis = AsyncMock()
    monkeypatch.setattr(CacheService, "_redis", redis)

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"] == {"database": "ok", "redis": "ok"}
    redis.ping.assert_awaited_once()


@pytest.mark.asyncio
async def test_health_reports_redis_down(client: AsyncClient, monkeypatch):
    redis = AsyncMock()
    redis.ping.side_effect = RedisError("connection refused")
    monkeypatch.setattr(CacheService, "_redis", redis)

    data = (await client.get("/health")).json()

    assert data["status"] == "unhealthy"
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["redis"].startswith("error")


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient):
    await client.get("/")
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "orders_created_total" in response.text
    assert "stock_rejections_total" in response.text


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient):
    response = await client.get("/")
    assert len(response.headers["X-Request-ID"]) == 32


# --- Cache ---

@pytest.mark.asyncio
async def test_cache_roundtrip_value():
    redis = AsyncMock()
    redis.get.return_value = '{"totalOrders": 3}'
    cache = CacheService(redis)

    assert await cache.get_dashboard_stats() == {"totalOrders": 3}
    redis.get.assert_awaited_once_with("dashboard:stats")


@pytest.mark.asyncio
async def test_cache_bypassed_when_redis_fails():
    redis = AsyncMock()
    redis.get.side_effect = RedisError("down")
    redis.set.side_effect = RedisError("down")
    redis.scan_iter = MagicMock(side_effect=RedisError("down"))
    cache = CacheService(redis)

    assert await cache.get_dashboard_stats() is None
    await cache.set_dashboard_stats({"totalOrders": 1})
    await cache.invalidate_dashboard()


@pytest.mark.asyncio
async def test_cache_set_skipped_for_zero_ttl():
    redis = AsyncMock()
    cache = CacheService(redis)

    await cache.set("dashboard:stats", {"totalOrders": 1}, ttl=0)

    redis.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalidate_dashboard_deletes_matching_keys():
    async def scan_iter(match):
        for key in ("dashboard:stats", "dashboard:revenue:7d"):
            yield key

    redis = AsyncMock()
    redis.scan_iter = scan_iter
    cache = CacheService(redis)

    await cache.invalidate_dashboard()

    redis.delete.assert_awaited_once_with("dashboard:stats", "dashboard:revenue:7d")


# --- Store call bound ---

@pytest.mark.asyncio
async def test_bounded_times_out():
    with pytest.raises(StoreTimeoutError) as exc_info:
        await bounded(asyncio.sleep(1), timeout=0.01)
    assert exc_info.value.status_code == 504


@pytest.mark.asyncio
async def test_bounded_passes_result():
    async def work():
        return 42

    assert await bounded(work(), timeout=1) == 42
