# coursehub/core/timezone_utils.py
"""
UTC helpers shared by the scheduling core.

All instants are stored timezone-aware in UTC. Daily scans use UTC day
boundaries for every tenant.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; those are treated as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Return the half-open ``[start, end)`` UTC day containing ``now``."""
    day = ensure_utc(now).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def utc_date(now: datetime) -> date:
    return ensure_utc(now).date()
