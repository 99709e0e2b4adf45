"""Timestamp and ID generation utilities."""

import math
from datetime import datetime, timezone
from uuid import uuid4


def generate_uuid() -> str:
    """
    Generate a UUID4 identifier for cases requiring guaranteed uniqueness.

    Returns:
        str: UUID4 string (e.g., "550e8400-e29b-41d4-a716-446655440000")
    """
    return str(uuid4())


def generate_timestamp() -> datetime:
    """
    Generate a timezone-aware UTC timestamp.

    Returns:
        datetime: Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """
    Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format

    Returns:
        str: ISO 8601 formatted string (e.g., "2024-01-15T10:30:00+00:00")
    """
    return dt.isoformat()


def parse_timestamp(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string.

    Args:
        iso_string: ISO 8601 formatted string

    Returns:
        datetime: Parsed datetime with timezone info
    """
    return datetime.fromisoformat(iso_string)


def format_time(seconds: float | None) -> str:
    """
    Format a playback position as m:ss.

    Args:
        seconds: Position in seconds; None or non-finite values render as 0:00

    Returns:
        str: e.g. "1:05"
    """
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
