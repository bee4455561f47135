"""
Tests for error handling and sanitization.

Tests cover:
- Domain error to HTTP status mapping
- Error sanitization in production vs development
"""

from unittest.mock import patch

import pytest

from app.core.errors import (
    BatchLoadError,
    BoardError,
    DataIntegrityError,
    InvalidCursorError,
    NotFoundError,
    ValidationError,
    get_status_code,
)
from app.main import _sanitize_error_details


class TestStatusMapping:
    """Tests for get_status_code."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (ValidationError("bad"), 400),
            (InvalidCursorError("bad cursor"), 400),
            (NotFoundError("missing"), 404),
            (DataIntegrityError("gap"), 500),
            (BatchLoadError("contract"), 500),
            (BoardError("generic"), 500),
            (RuntimeError("unknown"), 500),
        ],
    )
    async def test_status_codes(self, error: Exception, status: int):
        assert get_status_code(error) == status

    @pytest.mark.anyio
    async def test_details_default_to_empty_dict(self):
        error = NotFoundError("Post not found")

        assert error.details == {}
        assert str(error) == "Post not found"


class TestSanitizeErrorDetails:
    """Tests for the _sanitize_error_details function."""

    @pytest.mark.anyio
    async def test_returns_all_details_in_non_production(self):
        """Test that all details are returned in non-production environments."""
        details = {
            "file_path": "/app/app/main.py",
            "sql_query": "SELECT * FROM posts WHERE id = 1",
        }

        with patch("app.main.settings") as mock_settings:
            mock_settings.app_env = "local"

            assert _sanitize_error_details(details) == details

    @pytest.mark.anyio
    async def test_redacts_paths_and_sql_in_production(self):
        details = {
            "post_id": 7,
            "file": "/app/app/repos/post_repo.py",
            "query": "select id from posts where id < 10",
            "nested": {"statement": "DELETE FROM comments WHERE id = 1"},
            "items": [{"path": "/srv/app/main.py"}, "plain"],
        }

        with patch("app.main.settings") as mock_settings:
            mock_settings.app_env = "prod"

            result = _sanitize_error_details(details)

        assert result == {
            "post_id": 7,
            "file": "[REDACTED]",
            "query": "[REDACTED]",
            "nested": {"statement": "[REDACTED]"},
            "items": [{"path": "[REDACTED]"}, "plain"],
        }

    @pytest.mark.anyio
    async def test_keeps_harmless_strings_in_production(self):
        with patch("app.main.settings") as mock_settings:
            mock_settings.app_env = "prod"

            assert _sanitize_error_details({"cursor": "eyJpZCI6OX0="}) == {"cursor": "eyJpZCI6OX0="}
