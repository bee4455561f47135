"""
Post detail assembly.

Two ways to build a `PostDetailResponse`:

- `load_post_details` assembles any number of posts through the request's
  loaders: one batch for posts, one for their comments and one for every
  author involved (post and comment authors together).
- `get_post_detail_eager` loads a single post with its whole graph in one
  eager-loading query.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.post import CommentResponse, PostDetailResponse, UserResponse
from app.core.errors import DataIntegrityError, NotFoundError
from app.db.models import Comment, Post, User
from app.domain.enums import UserRole
from app.repos.post_repo import get_post_with_details
from app.services.loaders import DataLoaders

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Stands in for a post author whose row no longer exists.
UNKNOWN_USER = UserResponse(
    id="unknown",
    email="unknown@example.com",
    role=UserRole.USER,
    created_at=_EPOCH,
    updated_at=_EPOCH,
)


def _comment_response(comment: Comment, users: Mapping[str, User]) -> CommentResponse:
    author = users.get(comment.user_id)
    if author is None:
        raise DataIntegrityError(
            f"Author for comment {comment.id} not found",
            details={"comment_id": comment.id, "user_id": comment.user_id},
        )
    return CommentResponse(
        id=comment.id,
        content=comment.content,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        author=UserResponse.model_validate(author),
    )


def _post_author(post: Post, users: Mapping[str, User]) -> UserResponse:
    author = users.get(post.user_id)
    if author is None:
        logger.warning(
            f"Author {post.user_id} of post {post.id} not found, using placeholder",
            extra={"post_id": post.id, "user_id": post.user_id},
        )
        return UNKNOWN_USER
    return UserResponse.model_validate(author)


def to_post_detail(
    post: Post, comments: Sequence[Comment], users: Mapping[str, User]
) -> PostDetailResponse:
    """Map a post, its comments and the users they reference into a detail view.

    Raises:
        DataIntegrityError: If a comment's author is not in ``users``
    """
    return PostDetailResponse(
        id=post.id,
        title=post.title,
        content=post.content,
        created_at=post.created_at,
        updated_at=post.updated_at,
        author=_post_author(post, users),
        comments=[_comment_response(comment, users) for comment in comments],
        comment_count=len(comments),
    )


async def load_post_details(
    loaders: DataLoaders, post_ids: Sequence[int]
) -> list[PostDetailResponse | None]:
    """
    Assemble detail views for ``post_ids`` with one batch per entity type.

    Args:
        loaders: Request-scoped loaders
        post_ids: Posts to assemble, in the order results are wanted

    Returns:
        One entry per requested id; None where the post does not exist

    Raises:
        DataIntegrityError: If a comment references a missing user
    """
    posts = await loaders.posts.load_many(post_ids)
    found = [post for post in posts if post is not None]

    comment_lists = await loaders.comments_by_post.load_many([post.id for post in found])
    comments_by_post = {
        post.id: comments or [] for post, comments in zip(found, comment_lists, strict=True)
    }

    user_ids: set[str] = {post.user_id for post in found}
    for comments in comments_by_post.values():
        user_ids.update(comment.user_id for comment in comments)
    users = await loaders.users.load_many_as_map(sorted(user_ids))

    return [
        to_post_detail(post, comments_by_post[post.id], users) if post is not None else None
        for post in posts
    ]


async def get_post_detail(loaders: DataLoaders, post_id: int) -> PostDetailResponse:
    """Assemble one post through the loaders.

    Raises:
        NotFoundError: If the post does not exist
    """
    (detail,) = await load_post_details(loaders, [post_id])
    if detail is None:
        raise NotFoundError("Post not found", details={"post_id": post_id})
    return detail


async def get_post_detail_eager(db: AsyncSession, post_id: int) -> PostDetailResponse:
    """Load one post with its author, comments and comment authors in one query.

    Raises:
        NotFoundError: If the post does not exist
    """
    post = await get_post_with_details(db, post_id)
    users: dict[str, User] = {}
    if post.author is not None:
        users[post.author.id] = post.author
    for comment in post.comments:
        if comment.author is not None:
            users[comment.author.id] = comment.author
    return to_post_detail(post, post.comments, users)
