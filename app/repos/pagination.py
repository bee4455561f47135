"""Shared utilities for offset and cursor-based pagination.

`build_connection` turns any `PageSource` (windowed fetch + count) into a
`Connection`. Offset mode is used when the request carries `page` or
`per_page`; otherwise the request is read as cursor mode (`first`/`after`).
Both modes over-fetch one probe row to find out whether more rows exist and
trim it before returning.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import Select

from app.api.schemas.pagination import PageRequest
from app.core.config import settings
from app.core.errors import InvalidCursorError
from app.core.observability import metrics
from app.db.validators import to_jsonable
from app.domain.enums import PaginationMode

logger = logging.getLogger(__name__)

# Post and comment ids are INTEGER columns
MIN_CURSOR_ID = -(2**31)
MAX_CURSOR_ID = 2**31 - 1
# Longest cursor accepted from a client
MAX_CURSOR_LENGTH = 512


def encode_cursor(token: Any) -> str:
    """Encode a position token as an opaque cursor.

    Args:
        token: JSON-serializable position, e.g. ``{"id": 42}``

    Returns:
        Base64-encoded cursor string
    """
    json_str = json.dumps(to_jsonable(token), sort_keys=True, separators=(",", ":"))
    return base64.b64encode(json_str.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Any:
    """Decode a cursor produced by `encode_cursor`.

    Args:
        cursor: Base64-encoded cursor string

    Returns:
        The decoded position token

    Raises:
        InvalidCursorError: If cursor is invalid or malformed
    """
    try:
        json_str = base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8")
        return json.loads(json_str)
    except (binascii.Error, UnicodeError, ValueError, RecursionError) as e:
        raise InvalidCursorError(f"Invalid cursor: {e}", details={"cursor": cursor}) from e


def cursor_id(token: Any) -> int:
    """Extract the integer ``id`` from a decoded cursor token.

    Raises:
        InvalidCursorError: If the token is not an ``{"id": <int>}`` object or
            the id does not fit an INTEGER column
    """
    if not isinstance(token, dict) or "id" not in token:
        raise InvalidCursorError("Invalid cursor: missing id", details={"token": token})
    value = token["id"]
    # bool is an int subclass; a cursor never carries one
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCursorError("Invalid cursor: id must be an integer", details={"token": token})
    if not MIN_CURSOR_ID <= value <= MAX_CURSOR_ID:
        raise InvalidCursorError("Invalid cursor: id out of range", details={"token": token})
    return value


def apply_cursor_filter(
    stmt: Select,
    model: Any,
    after: Any | None,
    id_column: str = "id",
) -> Select:
    """Restrict a newest-first query to rows strictly after the cursor anchor.

    Rows are ordered by ``id`` descending, so "after" means a smaller id. The
    anchor row itself is never returned again.

    Args:
        stmt: Existing SQLAlchemy Select statement
        model: SQLAlchemy model class
        after: Decoded cursor token (None for the first page)
        id_column: Name of the sort key column

    Returns:
        Modified Select statement with the keyset filter applied
    """
    if after is None:
        return stmt
    return stmt.where(getattr(model, id_column) < cursor_id(after))


@dataclass(frozen=True)
class PageWindow:
    """The slice of the ordered result a source must return.

    ``take`` already includes the probe row. In offset mode ``after`` is None;
    in cursor mode ``skip`` is 0 and ``after`` holds the decoded token (or None
    for the first page).
    """

    mode: PaginationMode
    skip: int
    take: int
    after: Any | None = None


class PageSource[T](Protocol):
    """What `build_connection` needs from a data source.

    ``fetch_page`` and ``count`` must apply the same filters.
    """

    async def fetch_page(self, window: PageWindow, **filters: Any) -> Sequence[T]: ...

    async def count(self, **filters: Any) -> int: ...

    def cursor_for(self, item: T) -> Any: ...


@dataclass
class Edge[T]:
    node: T
    cursor: str


@dataclass
class PageInfo:
    has_next_page: bool
    next_cursor: str | None


@dataclass
class Connection[T]:
    """A paginated result: edges in source order plus page metadata."""

    edges: list[Edge[T]] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=lambda: PageInfo(False, None))
    total_count: int = 0

    @property
    def nodes(self) -> list[T]:
        return [edge.node for edge in self.edges]

    def map[U](self, fn: Callable[[T], U]) -> Connection[U]:
        """Return a connection with every node converted by ``fn``."""
        return Connection(
            edges=[Edge(node=fn(edge.node), cursor=edge.cursor) for edge in self.edges],
            page_info=self.page_info,
            total_count=self.total_count,
        )


def resolve_window(request: PageRequest) -> tuple[PageWindow, int]:
    """Compute the fetch window and the requested page size for a request."""
    default_size = settings.pagination_default_size

    if request.mode == PaginationMode.OFFSET:
        page = request.page or 1
        per_page = request.per_page or default_size
        window = PageWindow(
            mode=PaginationMode.OFFSET,
            skip=(page - 1) * per_page,
            take=per_page + 1,
        )
        return window, per_page

    first = request.first or default_size
    after = decode_cursor(request.after) if request.after else None
    window = PageWindow(mode=PaginationMode.CURSOR, skip=0, take=first + 1, after=after)
    return window, first


async def build_connection[T](
    source: PageSource[T],
    request: PageRequest,
    **filters: Any,
) -> Connection[T]:
    """Build a page of ``source`` for ``request``.

    The window fetch and the count are issued one after the other against the
    same filters. Any source failure propagates and no partial page is
    returned. ``total_count`` is recomputed on every call, cursor pages
    included.

    Args:
        source: Data source providing windowed fetch, count and cursor tokens
        request: Offset or cursor page request
        **filters: Passed through unchanged to ``fetch_page`` and ``count``

    Returns:
        Connection holding at most the requested number of edges

    Raises:
        InvalidCursorError: If ``request.after`` is not a cursor we issued
    """
    window, size = resolve_window(request)

    items = list(await source.fetch_page(window, **filters))
    total_count = await source.count(**filters)

    if window.mode == PaginationMode.OFFSET:
        page = request.page or 1
        has_next_page = page * size < total_count
    else:
        has_next_page = len(items) > size

    # Trim the probe row before deriving cursors
    items = items[:size]
    edges = [Edge(node=item, cursor=encode_cursor(source.cursor_for(item))) for item in items]

    page_info = PageInfo(
        has_next_page=has_next_page,
        next_cursor=edges[-1].cursor if edges else None,
    )

    metrics.pagination_pages_total.labels(mode=window.mode.value).inc()
    logger.debug(
        "Built %s page",
        window.mode.value,
        extra={"skip": window.skip, "take": window.take, "returned": len(edges)},
    )

    return Connection(edges=edges, page_info=page_info, total_count=total_count)
