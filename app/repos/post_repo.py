"""
Repository functions for Post entities.

All queries are ordered newest-first by primary key, the same order the
pagination cursors encode.
"""

import logging
from collections.abc import Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import NotFoundError
from app.core.observability import db_metrics
from app.db.models import Comment, Post
from app.repos.pagination import apply_cursor_filter
from app.services.specifications import Specification

logger = logging.getLogger(__name__)


def _filtered(stmt: Select, specification: Specification | None) -> Select:
    if specification is None:
        return stmt
    return stmt.where(specification.to_predicate())


async def fetch_posts(
    db: AsyncSession,
    *,
    specification: Specification | None = None,
    skip: int = 0,
    take: int = 10,
    after: object | None = None,
) -> list[Post]:
    """Fetch a window of posts, newest first.

    Args:
        db: Database session
        specification: Optional filter
        skip: Rows to skip (offset pagination)
        take: Maximum rows to return
        after: Decoded cursor token; only posts older than its anchor are returned

    Returns:
        Posts in descending id order
    """
    stmt = _filtered(select(Post), specification)
    stmt = apply_cursor_filter(stmt, Post, after)
    stmt = stmt.order_by(Post.id.desc()).offset(skip).limit(take)

    with db_metrics.track("fetch_posts"):
        result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_posts(db: AsyncSession, *, specification: Specification | None = None) -> int:
    """Count posts matching ``specification``, ignoring any pagination window."""
    stmt = _filtered(select(func.count()).select_from(Post), specification)

    with db_metrics.track("count_posts"):
        result = await db.execute(stmt)
    return result.scalar_one()


async def find_posts_by_ids(db: AsyncSession, post_ids: Sequence[int]) -> list[Post]:
    """Fetch posts by primary key. Order is unspecified; missing ids are skipped."""
    if not post_ids:
        return []

    stmt = select(Post).where(Post.id.in_(post_ids))
    with db_metrics.track("find_posts_by_ids"):
        result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_post_with_details(db: AsyncSession, post_id: int) -> Post:
    """Fetch one post with its author, comments and comment authors eagerly loaded.

    Raises:
        NotFoundError: If the post does not exist
    """
    stmt = (
        select(Post)
        .where(Post.id == post_id)
        .options(
            selectinload(Post.author),
            selectinload(Post.comments).selectinload(Comment.author),
        )
    )
    with db_metrics.track("get_post_with_details"):
        result = await db.execute(stmt)
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found", details={"post_id": post_id})
    return post
