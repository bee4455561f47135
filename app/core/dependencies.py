"""
FastAPI dependency injection utilities.

Provides the request-scoped database session and the loaders built on it.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_async_sessionmaker
from app.services.loaders import DataLoaders, create_dataloaders

# ============================================================================
# Database Dependencies
# ============================================================================


async def get_async_db_session() -> AsyncGenerator[AsyncSession]:
    """
    Async database session dependency for FastAPI endpoints.

    Usage:
        @router.get("/posts/offset")
        async def list_posts(db: AsyncDbSession):
            ...

    The handlers are read-only, so the session is closed without a commit.

    Yields:
        Async SQLAlchemy database session
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        yield session


AsyncDbSession = Annotated[AsyncSession, Depends(get_async_db_session)]


# ============================================================================
# Loader Dependencies
# ============================================================================


async def get_dataloaders(db: AsyncDbSession) -> DataLoaders:
    """Fresh loaders for the current request, bound to its session."""
    return create_dataloaders(db)


Loaders = Annotated[DataLoaders, Depends(get_dataloaders)]
