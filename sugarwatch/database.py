"""Database connection and session management.

Uses lazy initialization so the engine is created inside the running
event loop, and so tests can point `settings.database_url` elsewhere
before the first connection.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from sugarwatch.config import settings
from sugarwatch.logging_config import get_logger

logger = get_logger(__name__)

# Built on first use by get_engine() and get_session_maker()
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Get or create the database engine.

    When testing=True, uses NullPool to avoid sharing pooled connections
    across test event loops.
    """
    global _engine
    if _engine is None:
        if settings.testing:
            # Every test swaps in its own SQLite file and event loop
            _engine = create_async_engine(
                settings.database_url,
                poolclass=NullPool,
            )
        else:
            # Shared by API requests and the Dexcom poller
            _engine = create_async_engine(
                settings.database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the session maker."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            # Routes serialize ORM rows after commit without reloading them
            expire_on_commit=False,
        )
    return _async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting database sessions."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions outside request scope.

    Each athlete sync in a polling cycle opens its own session, so a
    failed sync cannot leave another athlete's session half-committed.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def check_database_connection() -> bool:
    """
    Check if the database is reachable.

    Returns:
        True if database is connected, False otherwise.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        # Probes only report status; the reason goes to the log
        logger.warning("Database connection check failed", error=str(e))
        return False


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None


async def reset_database() -> None:
    """Dispose the current engine so the next call builds a fresh one."""
    await close_database()
