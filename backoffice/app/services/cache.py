"""
Redis cache service.
Caches the dashboard aggregate for a short TTL; every order mutation
invalidates it. Redis failures are logged and the cache is bypassed.
"""
import json
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from backoffice.app.core.logging import get_logger
from backoffice.app.core.settings import get_settings

logger = get_logger(__name__)


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    TTL_DEFAULT = 300  # 5 minutes

    KEY_DASHBOARD_STATS = "dashboard:stats"
    KEY_REVENUE_ANALYTICS = "dashboard:revenue:{period}"
    PATTERN_DASHBOARD = "dashboard:*"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection."""
        if cls._redis is None:
            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True,
            )
        return cls._redis

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._redis:
            await cls._redis.aclose()
            cls._redis = None

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache; None on miss or Redis failure."""
        try:
            data = await self.redis.get(key)
        except RedisError as e:
            logger.warning("Cache read failed", key=key, error=str(e))
            return None
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: int = TTL_DEFAULT):
        """Set value in cache with TTL."""
        if ttl <= 0:
            return
        try:
            await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)
        except RedisError as e:
            logger.warning("Cache write failed", key=key, error=str(e))

    async def delete_pattern(self, pattern: str):
        """Delete all keys matching pattern."""
        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern)]
            if keys:
                await self.redis.delete(*keys)
        except RedisError as e:
            logger.warning("Cache invalidation failed", pattern=pattern, error=str(e))

    # ----- Dashboard -----

    async def get_dashboard_stats(self) -> Optional[dict]:
        return await self.get(self.KEY_DASHBOARD_STATS)

    async def set_dashboard_stats(self, stats: dict):
        await self.set(self.KEY_DASHBOARD_STATS, stats, get_settings().DASHBOARD_CACHE_TTL)

    async def get_revenue_analytics(self, period: str) -> Optional[dict]:
        return await self.get(self.KEY_REVENUE_ANALYTICS.format(period=period))

    async def set_revenue_analytics(self, period: str, analytics: dict):
        await self.set(self.KEY_REVENUE_ANALYTICS.format(period=period), analytics, get_settings().DASHBOARD_CACHE_TTL)

    async def invalidate_dashboard(self):
        """Drop every cached dashboard aggregate (after any order mutation)."""
        await self.delete_pattern(self.PATTERN_DASHBOARD)
