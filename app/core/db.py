"""
Database connection and session management.

Provides the async SQLAlchemy engine, session factory, and the session
context manager used by FastAPI dependencies.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker | None = None
_telemetry_instrumented: bool = False


def _engine_kwargs(url: str) -> dict[str, object]:
    # SQLite (tests, local experiments) does not take pool sizing arguments.
    if url.startswith("sqlite"):
        return {"echo": settings.database_echo}

    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_pre_ping": True,  # Verify connections before use
        "echo": settings.database_echo,
        "connect_args": {
            "server_settings": {"timezone": "UTC"},
            "timeout": 30,
        },
    }


def create_fresh_async_engine(url: str | None = None) -> AsyncEngine:
    """Create a fresh async engine without caching.

    Used for tests to ensure each test gets its own engine bound to its event loop.
    """
    url = url or settings.async_url
    if not url:
        raise RuntimeError("DATABASE_URL is required")

    return create_async_engine(url, **_engine_kwargs(url))


def get_async_engine() -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    Uses the asyncpg driver for PostgreSQL URLs.

    Returns:
        Configured async SQLAlchemy engine
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    _async_engine = create_fresh_async_engine()
    _instrument_sqlalchemy(_async_engine)

    return _async_engine


def _instrument_sqlalchemy(engine: AsyncEngine) -> None:
    """
    Instrument the engine with OpenTelemetry.

    Args:
        engine: Async SQLAlchemy engine instance
    """
    global _telemetry_instrumented

    if _telemetry_instrumented:
        return

    try:
        from app.core.telemetry import instrument_sqlalchemy

        instrument_sqlalchemy(engine.sync_engine)
        _telemetry_instrumented = True
    except ImportError:
        logger.debug("OpenTelemetry not available - skipping SQLAlchemy instrumentation")
    except Exception as e:
        logger.warning(f"Failed to instrument SQLAlchemy with OpenTelemetry: {e}")


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async sessionmaker.

    Returns:
        Async sessionmaker factory
    """
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    engine = get_async_engine()
    _async_sessionmaker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Reset the async database engine and sessionmaker.

    Useful for tests to ensure fresh connections on new event loops.
    """
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None


@asynccontextmanager
async def get_async_db_session() -> AsyncIterator[AsyncSession]:
    """Async database session scope.

    Usage:
        async with get_async_db_session() as db:
            result = await db.execute(select(Post))

    Yields:
        Async database session

    Ensures:
        Session is rolled back on error and always closed
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
