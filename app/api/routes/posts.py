from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from app.api.schemas.pagination import (
    ConnectionResponse,
    EdgeResponse,
    PageInfoResponse,
    PageRequest,
    PaginatedResponse,
)
from app.api.schemas.post import PostDetailResponse, PostResponse
from app.core.config import settings
from app.core.dependencies import AsyncDbSession, Loaders
from app.db.models import Post
from app.domain.enums import SearchType
from app.repos.pagination import MAX_CURSOR_LENGTH, Connection
from app.services.post_detail import get_post_detail, get_post_detail_eager, load_post_details
from app.services.post_list import list_posts

router = APIRouter(tags=["posts"])

MAX_PAGE_SIZE = settings.pagination_max_size

# Keeps the OFFSET (page - 1) * per_page inside an INTEGER
MAX_PAGE_NUMBER = 1_000_000

PageParam = Annotated[
    int | None, Query(ge=1, le=MAX_PAGE_NUMBER, description="Page number (offset mode)")
]
PerPageParam = Annotated[
    int | None, Query(ge=1, le=MAX_PAGE_SIZE, description="Items per page (offset mode)")
]
FirstParam = Annotated[
    int | None, Query(ge=1, le=MAX_PAGE_SIZE, description="Items per page (cursor mode)")
]
AfterParam = Annotated[
    str | None,
    Query(max_length=MAX_CURSOR_LENGTH, description="Cursor of the last item seen (cursor mode)"),
]
KeywordParam = Annotated[str | None, Query(max_length=200, description="Search keyword")]


def _connection_response(connection: Connection[Post]) -> ConnectionResponse[PostResponse]:
    return ConnectionResponse[PostResponse](
        edges=[
            EdgeResponse[PostResponse](
                node=PostResponse.model_validate(edge.node), cursor=edge.cursor
            )
            for edge in connection.edges
        ],
        page_info=PageInfoResponse.model_validate(connection.page_info),
        total_count=connection.total_count,
    )


def _paginated_response(connection: Connection[Post]) -> PaginatedResponse[PostResponse]:
    return PaginatedResponse[PostResponse](
        nodes=[PostResponse.model_validate(post) for post in connection.nodes],
        page_info=PageInfoResponse.model_validate(connection.page_info),
        total_count=connection.total_count,
    )


@router.get("/posts")
async def get_posts(
    db: AsyncDbSession,
    page: PageParam = None,
    per_page: PerPageParam = None,
    first: FirstParam = None,
    after: AfterParam = None,
    keyword: KeywordParam = None,
) -> ConnectionResponse[PostResponse]:
    """List posts, newest first.

    Offset mode when `page` or `per_page` is given, cursor mode (`first`/`after`)
    otherwise.
    """
    request = PageRequest(page=page, per_page=per_page, first=first, after=after, keyword=keyword)
    connection = await list_posts(db, request)
    return _connection_response(connection)


@router.get("/posts/cursor")
async def get_posts_cursor(
    db: AsyncDbSession,
    first: FirstParam = None,
    after: AfterParam = None,
    keyword: KeywordParam = None,
) -> ConnectionResponse[PostResponse]:
    """List posts with cursor pagination."""
    request = PageRequest.cursor(
        first=first or settings.pagination_default_size, after=after, keyword=keyword
    )
    connection = await list_posts(db, request)
    return _connection_response(connection)


@router.get("/posts/offset")
async def get_posts_offset(
    db: AsyncDbSession,
    page: PageParam = None,
    per_page: PerPageParam = None,
    keyword: KeywordParam = None,
) -> PaginatedResponse[PostResponse]:
    """List posts with offset pagination."""
    request = PageRequest.offset(
        page=page or 1, per_page=per_page or settings.pagination_default_size, keyword=keyword
    )
    connection = await list_posts(db, request)
    return _paginated_response(connection)


@router.get("/posts/search")
async def search_posts(
    db: AsyncDbSession,
    keyword: KeywordParam = None,
    search_type: Annotated[
        SearchType, Query(description="Which fields the keyword is matched against")
    ] = SearchType.ALL,
    first: FirstParam = None,
    after: AfterParam = None,
) -> ConnectionResponse[PostResponse]:
    """Search posts by keyword with cursor pagination."""
    request = PageRequest.cursor(
        first=first or settings.pagination_default_size, after=after, keyword=keyword
    )
    connection = await list_posts(db, request, search_type=search_type)
    return _connection_response(connection)


@router.get("/posts/details")
async def get_post_details(
    loaders: Loaders,
    ids: Annotated[
        list[int], Query(min_length=1, max_length=MAX_PAGE_SIZE, description="Post IDs")
    ],
) -> list[PostDetailResponse]:
    """Detail views for several posts, assembled with batched loading.

    Unknown ids are left out of the result.
    """
    details = await load_post_details(loaders, ids)
    return [detail for detail in details if detail is not None]


@router.get("/posts/data-loader/{post_id}", response_model=PostDetailResponse)
async def get_post_via_loaders(post_id: int, loaders: Loaders):
    """Get one post with author and comments, assembled with batched loading."""
    return await get_post_detail(loaders, post_id)


@router.get("/posts/{post_id}", response_model=PostDetailResponse)
async def get_post(post_id: int, db: AsyncDbSession):
    """Get one post with author and comments, eager-loaded in one query."""
    return await get_post_detail_eager(db, post_id)
