"""
UTC datetime utilities for consistent timezone handling.

Job scheduling compares scheduled_for, started_at and last_sync_at across
backends, so every datetime in the system is timezone-aware UTC.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return the current UTC datetime with timezone info.

    Use this instead of datetime.now() (naive) or datetime.utcnow()
    (naive, deprecated).
    """
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure a datetime is UTC-aware.

    - If None, returns None
    - If naive, assumes UTC and attaches timezone
    - If aware, converts to UTC

    Use at repository/persistence boundaries (SQLite and some drivers
    return naive values).
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)
