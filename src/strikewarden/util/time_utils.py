from datetime import datetime, timezone
from typing import Optional

from strikewarden.util.logger import get_logger

logger = get_logger("time_utils")

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> str:
    """Format a datetime the way timestamps are stored in the database.

    Always UTC, millisecond precision and a ``Z`` suffix
    (``2025-08-01T10:00:00.000Z``) so that string comparison in SQL matches
    chronological order.

    Args:
        value: datetime to format.

    Returns:
        Fixed-width ISO-8601 timestamp string.
    """
    value = ensure_utc(value)
    return f"{value.strftime(STORAGE_FORMAT)}.{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp into an aware UTC datetime.

    Accepts both the ``Z`` suffix and explicit offsets.

    Raises:
        ValueError: If the string is not an ISO-8601 timestamp.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def parse_optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse ``value`` or return None when it is empty or unparseable."""
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.warning("[TIME] Ignoring unparseable timestamp %r", value)
        return None


def date_stamp(value: Optional[datetime] = None) -> str:
    """Return the ``YYYY-MM-DD`` UTC date of ``value`` (default: now)."""
    return ensure_utc(value or utcnow()).strftime("%Y-%m-%d")
