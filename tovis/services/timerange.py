# tovis/services/timerange.py
"""
Half-open time ranges [start, end) and interval arithmetic.

Pure functions only. Touching ranges ([9:00, 10:00) and [10:00, 11:00))
do not overlap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from .errors import InvalidRangeError


@dataclass(frozen=True, order=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise InvalidRangeError("End must be after start.")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "TimeRange":
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.start < b.end and b.start < a.end


def contains(rng: TimeRange, instant: datetime) -> bool:
    return rng.start <= instant < rng.end


def covers(outer: TimeRange, inner: TimeRange) -> bool:
    """True if `inner` lies entirely within `outer`."""
    return outer.start <= inner.start and inner.end <= outer.end


def clip(rng: TimeRange, window: TimeRange) -> TimeRange | None:
    """Intersection of two ranges, or None if they do not overlap."""
    start = max(rng.start, window.start)
    end = min(rng.end, window.end)
    if end <= start:
        return None
    return TimeRange(start, end)


def merge(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Sort and coalesce overlapping or adjacent ranges."""
    result: list[TimeRange] = []
    for rng in sorted(ranges):
        if result and rng.start <= result[-1].end:
            last = result[-1]
            if rng.end > last.end:
                result[-1] = TimeRange(last.start, rng.end)
        else:
            result.append(rng)
    return result


def subtract(base: TimeRange, exclusions: Iterable[TimeRange]) -> list[TimeRange]:
    """
    Remove every exclusion from `base`.

    Returns the remaining sub-ranges in ascending order. Exclusions are merged
    first, so adjacent exclusions never leave zero-width gaps.
    """
    remaining: list[TimeRange] = []
    cursor = base.start

    for exc in merge(exclusions):
        if exc.end <= cursor:
            continue
        if exc.start >= base.end:
            break
        if exc.start > cursor:
            remaining.append(TimeRange(cursor, exc.start))
        cursor = max(cursor, exc.end)
        if cursor >= base.end:
            break

    if cursor < base.end:
        remaining.append(TimeRange(cursor, base.end))

    return remaining


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
