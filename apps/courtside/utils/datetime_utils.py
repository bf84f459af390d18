"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
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

    SQLite drops tzinfo on DateTime(timezone=True) columns while Postgres keeps
    it, so comparisons against utcnow() go through this first.

    Args:
        value: Datetime from an ORM row, possibly naive

    Returns:
        Timezone-aware datetime, or None if value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for API responses."""
    aware = ensure_utc(value)
    return aware.isoformat() if aware else None
