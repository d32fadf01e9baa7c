"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime, timedelta
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on DateTime(timezone=True) columns; Postgres keeps it.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def is_expired(created_at: Optional[datetime], ttl_days: Optional[int]) -> bool:
    """
    Whether a pending row created at created_at is older than ttl_days.

    A missing TTL or missing timestamp never expires.
    """
    if ttl_days is None or created_at is None:
        return False
    return ensure_utc(created_at) < utcnow() - timedelta(days=ttl_days)
