"""SQLAlchemy ``@validates`` hooks and canonical JSON conversion."""

import re
import uuid
from datetime import date, datetime
from typing import Any

JsonType = dict[str, "JsonType"] | list["JsonType"] | str | int | float | bool | None

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_uuid_string(_key: str, value: uuid.UUID | str) -> str:
    """Store user ids as canonical UUID strings.

    Raises:
        ValueError: If the value is neither a UUID nor a string holding one
    """
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected UUID or str, got {type(value).__name__}")
    try:
        uuid.UUID(value)
    except ValueError:
        raise ValueError(f"Invalid UUID format: {value}") from None
    return value


def validate_email(_key: str, value: str) -> str:
    """Normalize an email address to lower case and check its shape."""
    if not isinstance(value, str) or not _EMAIL_RE.match(value.strip()):
        raise ValueError(f"Invalid email address: {value!r}")
    return value.strip().lower()


def to_jsonable(value: Any) -> JsonType:
    """Reduce a cursor token or cache key to plain JSON values.

    Dates become ISO strings, containers are converted element-wise and
    anything else unknown (UUID, Decimal, enums) falls back to ``str``.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return str(value)
