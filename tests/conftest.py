"""
Pytest configuration and shared fixtures.

Provides:
- AnyIO backend selection
- In-memory SQLite (aiosqlite) engine and session with the ORM schema created
- Seed helpers for users, posts and comments
- httpx AsyncClient over the ASGI app with the session dependency overridden
"""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OBSERVABILITY_STRUCTURED_LOGS", "false")
os.environ.setdefault("OTEL_ENABLED", "false")

import httpx  # noqa: E402 (import after env setup)
import pytest  # noqa: E402 (import after env setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.dependencies import get_async_db_session  # noqa: E402
from app.db.models import Base, Comment, Post, User  # noqa: E402
from app.domain.enums import UserRole  # noqa: E402
from app.main import create_app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


# =============================================================================
# AnyIO Backend Configuration
# =============================================================================
@pytest.fixture
def anyio_backend():
    return "asyncio"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def async_db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    session_maker = async_sessionmaker(
        bind=async_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    async with session_maker() as session:
        yield session


# =============================================================================
# Seed Helpers
# =============================================================================


def make_user(email: str, *, role: UserRole = UserRole.USER, user_id: str | None = None) -> User:
    return User(
        id=user_id or str(uuid.uuid4()),
        email=email,
        password="not-a-real-hash",
        role=role,
        created_at=_BASE_TIME,
        updated_at=_BASE_TIME,
    )


def make_post(post_id: int, author_id: str, *, title: str | None = None, content: str = "") -> Post:
    created = _BASE_TIME + timedelta(minutes=post_id)
    return Post(
        id=post_id,
        title=title or f"Post {post_id}",
        content=content or f"Body of post {post_id}",
        user_id=author_id,
        created_at=created,
        updated_at=created,
    )


def make_comment(comment_id: int, post_id: int, author_id: str, content: str = "") -> Comment:
    created = _BASE_TIME + timedelta(hours=1, minutes=comment_id)
    return Comment(
        id=comment_id,
        post_id=post_id,
        user_id=author_id,
        content=content or f"Comment {comment_id}",
        created_at=created,
        updated_at=created,
    )


@pytest.fixture
async def seeded_board(async_db_session: AsyncSession) -> dict:
    """
    Two users, twelve posts (ids 1..12) and a few comments.

    - alice writes odd posts, bob writes even posts
    - post 1 has comments 1 (bob) and 2 (alice); post 2 has comment 3 (alice)
    - post 3 title mentions "Python", post 4 body mentions "asyncio"
    - comment 4 on post 5 mentions "pagination"
    """
    alice = make_user("alice@example.com", role=UserRole.ADMIN)
    bob = make_user("bob@example.com")
    async_db_session.add_all([alice, bob])

    posts = []
    for post_id in range(1, 13):
        author = alice if post_id % 2 else bob
        posts.append(make_post(post_id, author.id))
    posts[2].title = "Learning Python the hard way"
    posts[3].content = "Notes on asyncio event loops"
    async_db_session.add_all(posts)

    comments = [
        make_comment(1, 1, bob.id, "First!"),
        make_comment(2, 1, alice.id, "Thanks for reading"),
        make_comment(3, 2, alice.id, "Nice post"),
        make_comment(4, 5, bob.id, "Cursor pagination is neat"),
    ]
    async_db_session.add_all(comments)
    await async_db_session.commit()

    return {"alice": alice, "bob": bob, "posts": posts, "comments": comments}


# =============================================================================
# HTTP Client
# =============================================================================


@pytest.fixture
async def async_client(async_db_session: AsyncSession) -> AsyncGenerator[httpx.AsyncClient]:
    """AsyncClient against the app, every request sharing the test session."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession]:
        yield async_db_session

    app.dependency_overrides[get_async_db_session] = override_session

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
