"""
Domain-specific exceptions for the Board API.

These exceptions represent business logic violations and are mapped
to appropriate HTTP status codes in the API layer.
"""

from typing import Any


class BoardError(Exception):
    """Base exception for all board domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BoardError):
    """
    Raised when input data fails validation.

    HTTP Status: 400 Bad Request
    """

    pass


class InvalidCursorError(ValidationError):
    """
    Raised when a pagination cursor cannot be decoded.

    Cursors are opaque to clients; anything we did not hand out is
    rejected as client input rather than silently restarting at page 1.

    HTTP Status: 400 Bad Request
    """

    pass


class NotFoundError(BoardError):
    """
    Raised when a requested resource does not exist.

    Examples:
    - Post ID not found

    HTTP Status: 404 Not Found
    """

    pass


class DataIntegrityError(BoardError):
    """
    Raised when stored data is referentially inconsistent.

    Examples:
    - Comment references a user that does not exist

    HTTP Status: 500 Internal Server Error
    """

    pass


class BatchLoadError(BoardError):
    """
    Raised when a batch function breaks its contract.

    Examples:
    - Returned a different number of results than keys requested

    HTTP Status: 500 Internal Server Error
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    InvalidCursorError: 400,
    NotFoundError: 404,
    DataIntegrityError: 500,
    BatchLoadError: 500,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
