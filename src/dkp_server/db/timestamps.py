"""Timestamp encoding for TEXT columns.

Event times are stored as ISO-8601 strings normalized to UTC with second
precision (``2025-10-07T19:00:00+00:00``). A single fixed-width format keeps
SQL string comparison (``start_time < end_time``, range filters, ``ORDER BY``)
equivalent to chronological comparison.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime, truncated to seconds."""
    return datetime.now(UTC).replace(microsecond=0)


def to_db_timestamp(value: datetime) -> str:
    """Encode a datetime for storage. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0).isoformat()


def from_db_timestamp(value: str) -> datetime:
    """Decode a stored timestamp into an aware UTC datetime.

    Also accepts SQLite ``CURRENT_TIMESTAMP`` output (``YYYY-MM-DD HH:MM:SS``).
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
