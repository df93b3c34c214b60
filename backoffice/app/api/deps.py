from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.database import async_session
from backoffice.app.services.cache import CacheService


# One database session per request
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# Shared Redis-backed cache
async def get_cache() -> AsyncGenerator[CacheService, None]:
    redis = await CacheService.get_redis()
    yield CacheService(redis)
