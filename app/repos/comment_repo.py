"""Repository functions for Comment entities."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.observability import db_metrics
from app.db.models import Comment


async def find_comments_by_post_ids(db: AsyncSession, post_ids: Sequence[int]) -> list[Comment]:
    """Fetch every comment on the given posts, oldest first.

    Args:
        db: Database session
        post_ids: Post IDs to collect comments for

    Returns:
        Flat list of comments across all posts
    """
    if not post_ids:
        return []

    stmt = select(Comment).where(Comment.post_id.in_(post_ids)).order_by(Comment.id)
    with db_metrics.track("find_comments_by_post_ids"):
        result = await db.execute(stmt)
    return list(result.scalars().all())
