"""
Time Windows

Epoch-millisecond helpers and the adjacent current/previous comparison
windows used by every dashboard metric.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

DAY_MS = 24 * 60 * 60 * 1000

_EPOCH = datetime(1970, 1, 1)


def to_epoch_ms(value: datetime) -> int:
    """Epoch milliseconds for a datetime. Naive values are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int) -> datetime:
    """Naive UTC datetime for epoch milliseconds."""
    return _EPOCH + timedelta(milliseconds=ms)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, the record store's convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TimeWindow:
    """
    A span of time in epoch milliseconds.

    ``start`` is always inclusive; ``end`` is inclusive unless
    ``end_inclusive`` is False.
    """
    start: int
    end: int
    end_inclusive: bool = True

    @property
    def days(self) -> float:
        return (self.end - self.start) / DAY_MS

    def contains(self, ms: int) -> bool:
        if ms < self.start:
            return False
        return ms <= self.end if self.end_inclusive else ms < self.end


def current_and_previous_windows(now_ms: int, days: int = 30) -> Tuple[TimeWindow, TimeWindow]:
    """
    Two adjacent windows that partition the last ``2 * days`` days.

    current  = [now - days, now]            both ends inclusive
    previous = [now - 2*days, now - days)   upper end exclusive
    """
    span = days * DAY_MS
    boundary = now_ms - span
    current = TimeWindow(start=boundary, end=now_ms, end_inclusive=True)
    previous = TimeWindow(start=boundary - span, end=boundary, end_inclusive=False)
    return current, previous


def daily_windows(now: datetime, days: int) -> List[Tuple[str, TimeWindow]]:
    """
    Calendar-day windows (UTC) for the last ``days`` days, oldest first,
    ending with today. Each window is ``[midnight, next midnight)``.
    """
    today = datetime(now.year, now.month, now.day)
    windows = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        start = to_epoch_ms(day)
        windows.append((day.date().isoformat(), TimeWindow(start, start + DAY_MS, end_inclusive=False)))
    return windows


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
