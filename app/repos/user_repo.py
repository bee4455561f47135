"""Repository functions for User entities."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.observability import db_metrics
from app.db.models import User


async def find_users_by_ids(db: AsyncSession, user_ids: Sequence[str]) -> list[User]:
    """Fetch users by ID. Missing IDs are skipped."""
    if not user_ids:
        return []

    stmt = select(User).where(User.id.in_(user_ids))
    with db_metrics.track("find_users_by_ids"):
        result = await db.execute(stmt)
    return list(result.scalars().all())
