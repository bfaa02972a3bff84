"""Calendar helpers for timezone-aware datetimes."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_years(moment: datetime, years: int) -> datetime:
    """Shift a datetime by whole years, clamping Feb 29 to Feb 28."""
    year = moment.year + years
    day = min(moment.day, calendar.monthrange(year, moment.month)[1])
    return moment.replace(year=year, day=day)


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months elapsed from start to end (negative if end < start)."""
    if end < start:
        return -months_between(end, start)
    months = (end.year - start.year) * 12 + (end.month - start.month)
    # The last month is only complete once the day and time are reached
    if (end.day, end.time()) < (start.day, start.time()):
        months -= 1
    return months


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by GitHub. None if unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
