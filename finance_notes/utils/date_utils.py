"""Date manipulation utilities"""

import math
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def seconds_from_now(seconds: int, now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=seconds)


def seconds_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole seconds remaining until a moment, never negative"""
    remaining = (moment - (now or utcnow())).total_seconds()
    return max(math.ceil(remaining), 0)
