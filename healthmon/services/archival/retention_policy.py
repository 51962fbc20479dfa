# healthmon/services/archival/retention_policy.py
"""
Retention window arithmetic.

Pure functions, no side effects. All timestamps are naive UTC.

Month arithmetic rule: adding N calendar months keeps the day of month
and clamps it to the last day of the target month when that day does
not exist. 2024-08-31 + 6 months is 2025-02-28, 2023-08-31 + 6 months
is 2024-02-29. The time of day is preserved.
"""

import calendar
from datetime import UTC, datetime, timedelta
from typing import Protocol

from healthmon.constants import RetentionPolicy


class RetentionTracked(Protocol):
    archived: bool
    scheduled_purge_at: datetime | None


def utcnow() -> datetime:
    """Current time as naive UTC (the default clock)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def add_calendar_months(dt: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def purge_date_for(archived_at: datetime) -> datetime:
    """Earliest moment an account archived at ``archived_at`` may be erased."""
    return add_calendar_months(to_naive_utc(archived_at), RetentionPolicy.RETENTION_MONTHS)


def is_purge_eligible(record: RetentionTracked, now: datetime) -> bool:
    if not record.archived or record.scheduled_purge_at is None:
        return False
    return to_naive_utc(now) >= record.scheduled_purge_at


def remaining(record: RetentionTracked, now: datetime) -> timedelta:
    """Time left before the retention window elapses (never negative)."""
    if record.scheduled_purge_at is None:
        return timedelta(0)
    return max(timedelta(0), record.scheduled_purge_at - to_naive_utc(now))
