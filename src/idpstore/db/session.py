"""
Database engine management for idpstore.

The store never owns a global engine: callers build one with ``create_engine``
and inject it, or borrow one for a block with ``engine_context``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from idpstore.core.config import Settings, get_settings
from idpstore.core.logging import get_logger

logger = get_logger(__name__)


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Create async database engine.

    Uses connection pooling for server databases and NullPool for tests and
    SQLite files.
    """
    settings = settings or get_settings()
    database_url = settings.database_url

    engine_kwargs: dict[str, Any] = {
        "echo": settings.debug and settings.environment == "development",
    }

    if settings.environment == "test" or database_url.startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow
        engine_kwargs["pool_timeout"] = settings.db_pool_timeout
        engine_kwargs["pool_pre_ping"] = True

    return create_async_engine(database_url, **engine_kwargs)


async def check_connection(engine: AsyncEngine) -> None:
    """Verify database connectivity, re-raising the driver error on failure."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


@asynccontextmanager
async def engine_context(settings: Settings | None = None) -> AsyncGenerator[AsyncEngine, None]:
    """
    Context manager that builds an engine and disposes it afterwards.

    Usage:
        async with engine_context() as engine:
            store = SPConfigStore(engine)
    """
    engine = create_engine(settings)
    try:
        yield engine
    finally:
        await engine.dispose()
        logger.debug("Database connections closed")
