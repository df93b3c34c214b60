import asyncio
from typing import Awaitable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backoffice.app.core.exceptions import StoreTimeoutError, StoreUnavailableError
from backoffice.app.core.settings import get_settings

T = TypeVar("T")

settings = get_settings()

_engine_kwargs = {"echo": False, "pool_pre_ping": True}
if settings.db_url.startswith("postgresql"):
    _engine_kwargs.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,
        # asyncpg: abort any single statement that outlives the store timeout
        connect_args={"command_timeout": settings.STORE_CALL_TIMEOUT_SECONDS},
    )

engine = create_async_engine(url=settings.db_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, expire_on_commit=False)


async def bounded(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """
    Await a store operation with an upper time bound.

    Timeouts become StoreTimeoutError; lost or refused connections become
    StoreUnavailableError. Business errors pass through untouched.
    """
    limit = timeout if timeout is not None else get_settings().STORE_CALL_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError:
        raise StoreTimeoutError(limit)
    except OperationalError as e:
        raise StoreUnavailableError(str(e.orig) if e.orig else str(e))
    except DBAPIError as e:
        if e.connection_invalidated:
            raise StoreUnavailableError("database connection lost")
        raise
