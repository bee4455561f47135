"""
Domain enums shared by the ORM models and API schemas.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role of a board user."""

    USER = "USER"
    ADMIN = "ADMIN"


class SearchType(str, Enum):
    """Which post fields a keyword search inspects."""

    ALL = "all"
    TITLE = "title"
    CONTENT = "content"
    AUTHOR_EMAIL = "author_email"
    COMMENT = "comment"


class PaginationMode(str, Enum):
    """How a page request is interpreted."""

    OFFSET = "offset"
    CURSOR = "cursor"
