"""
Pydantic schemas for API request/response validation.

This package contains schema definitions for different domain entities
used in API endpoints.
"""

# Re-export schemas for convenient imports.
from .pagination import ConnectionResponse as ConnectionResponse
from .pagination import PageInfoResponse as PageInfoResponse
from .pagination import PageRequest as PageRequest
from .pagination import PaginatedResponse as PaginatedResponse
from .post import CommentResponse as CommentResponse
from .post import PostDetailResponse as PostDetailResponse
from .post import PostResponse as PostResponse
from .post import UserResponse as UserResponse
