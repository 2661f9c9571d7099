"""Inactivity threshold evaluation.

Thresholds match on exact equality with the elapsed whole-day count, not
"at least N days". A user first seen at day 10 never receives the day-7
reminder and will only be picked up again at day 14.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Iterable

ONE_DAY = timedelta(days=1)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_days(now: datetime, last_activity: datetime) -> int:
    """Whole days between ``last_activity`` and ``now``, floored.

    Future timestamps produce a negative count.
    """
    return (_as_utc(now) - _as_utc(last_activity)) // ONE_DAY


def matching_thresholds(elapsed: int, thresholds: Iterable[int]) -> FrozenSet[int]:
    if elapsed < 0:
        return frozenset()
    return frozenset(value for value in thresholds if value == elapsed)


def category_for(threshold: int) -> str:
    return f"inactivity_{threshold}d"
