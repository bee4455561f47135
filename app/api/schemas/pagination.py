"""Pagination request and response schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.domain.enums import PaginationMode


class PageRequest(BaseModel):
    """Offset or cursor page request.

    Offset mode is selected when ``page`` or ``per_page`` is present; cursor
    mode otherwise. Fields of the other mode are ignored.
    """

    model_config = ConfigDict(frozen=True)

    page: int | None = Field(default=None, ge=1)
    per_page: int | None = Field(default=None, gt=0)
    first: int | None = Field(default=None, gt=0)
    after: str | None = None
    keyword: str | None = None

    @property
    def mode(self) -> PaginationMode:
        if self.page is not None or self.per_page is not None:
            return PaginationMode.OFFSET
        return PaginationMode.CURSOR

    @classmethod
    def offset(cls, page: int = 1, per_page: int = 10, keyword: str | None = None) -> PageRequest:
        return cls(page=page, per_page=per_page, keyword=keyword)

    @classmethod
    def cursor(
        cls, first: int = 10, after: str | None = None, keyword: str | None = None
    ) -> PageRequest:
        return cls(first=first, after=after, keyword=keyword)


class PageInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    has_next_page: bool = Field(description="Whether another page can be fetched")
    next_cursor: str | None = Field(
        default=None, description="Cursor of the last edge; pass as `after` for the next page"
    )


class EdgeResponse[T](BaseModel):
    node: T
    cursor: str


class ConnectionResponse[T](BaseModel):
    """Response model for cursor-paginated data."""

    edges: list[EdgeResponse[T]]
    page_info: PageInfoResponse
    total_count: int


class PaginatedResponse[T](BaseModel):
    """Response model for offset-paginated data."""

    nodes: list[T]
    page_info: PageInfoResponse
    total_count: int
