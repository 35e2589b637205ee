# backend/evcharge/core/timezone_utils.py
"""
UTC helpers.

Every timestamp is persisted in UTC. SQLite returns naive datetimes for
``DateTime(timezone=True)`` columns, so values read back are normalized
through ``to_utc`` before any comparison.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as an aware UTC datetime. Naive values are assumed to be UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_to_timedelta(hours: float) -> timedelta:
    return timedelta(seconds=round(float(hours) * 3600))


def start_of_month(dt: datetime) -> datetime:
    """First instant of the UTC month containing ``dt``."""
    aware = to_utc(dt)
    assert aware is not None
    return aware.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
