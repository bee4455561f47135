"""Post listing: adapts the post repository to `build_connection`."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.pagination import PageRequest
from app.db.models import Post
from app.domain.enums import SearchType
from app.repos.pagination import Connection, PageWindow, build_connection
from app.repos.post_repo import count_posts, fetch_posts
from app.services.specifications import Specification, specification_for


class PostPageSource:
    """Newest-first posts, optionally filtered by a specification."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def fetch_page(
        self, window: PageWindow, *, specification: Specification | None = None
    ) -> Sequence[Post]:
        return await fetch_posts(
            self._db,
            specification=specification,
            skip=window.skip,
            take=window.take,
            after=window.after,
        )

    async def count(self, *, specification: Specification | None = None) -> int:
        return await count_posts(self._db, specification=specification)

    def cursor_for(self, item: Post) -> dict[str, int]:
        return {"id": item.id}


async def list_posts(
    db: AsyncSession,
    request: PageRequest,
    *,
    search_type: SearchType = SearchType.ALL,
) -> Connection[Post]:
    """List posts for an offset or cursor page request.

    ``request.keyword`` is matched according to ``search_type``; without a
    keyword every post is listed.

    Raises:
        InvalidCursorError: If ``request.after`` is malformed
    """
    specification = specification_for(search_type, request.keyword)
    return await build_connection(PostPageSource(db), request, specification=specification)
