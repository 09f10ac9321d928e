"""
Calendar windows for aggregation.

A window is an inclusive (first instant, last instant) pair in UTC. The
last instant is one microsecond before the next window starts, which is
the finest resolution any backend stores.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

Window = tuple[datetime, datetime]

_TICK = timedelta(microseconds=1)


def _check_month(month: int) -> None:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month!r}")


def month_window(month: int, year: int) -> Window:
    _check_month(month)
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        following = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        following = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, following - _TICK


def year_window(year: int) -> Window:
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    return start, datetime(year + 1, 1, 1, tzinfo=timezone.utc) - _TICK


def resolve_month(
    now: datetime,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> tuple[int, int]:
    """Fill in a missing month/year from `now`."""
    month = now.month if month is None else month
    year = now.year if year is None else year
    _check_month(month)
    return month, year
