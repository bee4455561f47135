"""Request-scoped loaders for posts, comments and users.

One `DataLoaders` container is built per request from that request's
session (see `app.core.dependencies.get_dataloaders`), so caches never
outlive the request.

Usage in a handler:
    posts = await loaders.posts.load_many([1, 2, 3])
    comments = await loaders.comments_by_post.load(1)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Comment, Post, User
from app.repos.comment_repo import find_comments_by_post_ids
from app.repos.post_repo import find_posts_by_ids
from app.repos.user_repo import find_users_by_ids
from app.services.dataloader import KeyedBatchLoader, group_by_key, index_by_key


@dataclass
class DataLoaders:
    """Container for all loader instances of one request."""

    posts: KeyedBatchLoader[int, Post]
    comments_by_post: KeyedBatchLoader[int, list[Comment]]
    users: KeyedBatchLoader[str, User]


def create_dataloaders(db: AsyncSession) -> DataLoaders:
    """Factory for creating request-scoped loaders.

    Args:
        db: Database session for the current request

    Returns:
        DataLoaders container with all loaders initialized
    """

    async def batch_load_posts(post_ids: list[int]) -> list[Post | None]:
        posts = await find_posts_by_ids(db, post_ids)
        return index_by_key(posts, post_ids, lambda post: post.id)

    async def batch_load_comments(post_ids: list[int]) -> list[list[Comment]]:
        comments = await find_comments_by_post_ids(db, post_ids)
        return group_by_key(comments, post_ids, lambda comment: comment.post_id)

    async def batch_load_users(user_ids: list[str]) -> list[User | None]:
        users = await find_users_by_ids(db, user_ids)
        return index_by_key(users, user_ids, lambda user: user.id)

    return DataLoaders(
        posts=KeyedBatchLoader(batch_load_posts, name="posts"),
        comments_by_post=KeyedBatchLoader(batch_load_comments, name="comments_by_post"),
        users=KeyedBatchLoader(batch_load_users, name="users"),
    )


__all__ = ["DataLoaders", "create_dataloaders"]
