"""Date arithmetic shared by the PNL calculator and the status resolver."""

from __future__ import annotations

import math
from datetime import date, datetime, time

SECONDS_PER_DAY = 86_400


def to_datetime(value: date | datetime) -> datetime:
    """Naive datetime; plain dates map to midnight."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.min)


def to_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date | datetime, end: date | datetime) -> float:
    """Fractional days from *start* to *end* (negative when end is earlier)."""
    return (to_datetime(end) - to_datetime(start)).total_seconds() / SECONDS_PER_DAY


def holding_days(start: date | datetime, expiry: date | datetime, minimum: int = 1) -> int:
    """max(minimum, ceil(days from first trade to expiry))."""
    return max(minimum, math.ceil(days_between(start, expiry)))


def days_to_expiry(expiry: date | datetime, today: date | datetime) -> int:
    """Whole calendar days left; negative once the expiry date has passed."""
    return (to_date(expiry) - to_date(today)).days
