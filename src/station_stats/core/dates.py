"""Calendar helpers for day and month buckets.

All jobs take an explicit ``today``; these helpers supply the UTC
default and the bucket boundaries derived from it.
"""

from datetime import date, datetime, timezone


def utc_today() -> date:
    """Current date in UTC."""
    return datetime.now(timezone.utc).date()


def month_start(day: date) -> date:
    """First day of the month containing ``day``."""
    return day.replace(day=1)

