# tovis/services/slots/calculator.py
"""
Pure slot calculation.

For each local day: working-hours open intervals, minus busy ranges
(calendar blocks + non-cancelled bookings, each booking including its
buffer), walked on a fixed grid of `step_minutes` anchored at the open
interval's start. A start time is a slot when the appointment
[start, start + duration) lies inside working hours and
[start, start + duration + buffer) touches no busy range. The buffer may run
past closing time.

Contains:
✓ working hours (in the professional's time zone)
✓ calendar blocks and bookings (as busy ranges)
✓ buffer time after each appointment

Does NOT contain:
✗ min advance / horizon filtering (see availability.py)
✗ slot holds (short-lived, applied at read time in availability.py)
✗ caching (see redis_store.py)
"""

from datetime import date, datetime, timedelta
from math import ceil
from typing import Iterable

from ..errors import InvalidRangeError
from ..timerange import TimeRange, subtract
from ..working_hours import WorkingHours


def calculate_day_slots(
    working_hours: WorkingHours,
    day: date,
    busy: Iterable[TimeRange],
    duration_minutes: int,
    step_minutes: int,
    buffer_minutes: int = 0,
) -> list[datetime]:
    """
    Calculate slot starts (UTC) for one local calendar day.

    Returns:
        Ascending list of slot starts. Empty list = no slots.
    """
    _validate(duration_minutes, step_minutes, buffer_minutes)

    busy = list(busy)
    duration = timedelta(minutes=duration_minutes)
    buffer = timedelta(minutes=buffer_minutes)
    step = timedelta(minutes=step_minutes)
    slots: list[datetime] = []

    for open_range in working_hours.open_ranges(day):
        extended = TimeRange(open_range.start, open_range.end + buffer)
        for free in subtract(extended, busy):
            # First grid point at or after the free range's start
            offset = (free.start - open_range.start) / step
            t = open_range.start + ceil(offset) * step

            while t + duration <= open_range.end and t + duration + buffer <= free.end:
                slots.append(t)
                t += step

    return sorted(set(slots))


def calculate_slots(
    working_hours: WorkingHours,
    window: TimeRange,
    busy: Iterable[TimeRange],
    duration_minutes: int,
    step_minutes: int,
    buffer_minutes: int = 0,
) -> list[datetime]:
    """
    Calculate slot starts within `window`, across every local day it touches.

    A slot is kept only if it starts at or after window.start and ends at or
    before window.end.
    """
    _validate(duration_minutes, step_minutes, buffer_minutes)

    busy = list(busy)
    duration = timedelta(minutes=duration_minutes)
    slots: set[datetime] = set()

    for day in local_days(working_hours, window):
        day_slots = calculate_day_slots(
            working_hours, day, busy, duration_minutes, step_minutes, buffer_minutes
        )
        for start in day_slots:
            if start >= window.start and start + duration <= window.end:
                slots.add(start)

    return sorted(slots)


def local_days(working_hours: WorkingHours, window: TimeRange) -> list[date]:
    """Local calendar days touched by the window, inclusive."""
    first = working_hours.local_date(window.start)
    last = working_hours.local_date(window.end)

    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def _validate(duration_minutes: int, step_minutes: int, buffer_minutes: int = 0) -> None:
    if duration_minutes <= 0:
        raise InvalidRangeError("Service duration must be positive.")
    if step_minutes <= 0:
        raise InvalidRangeError("Slot step must be positive.")
    if buffer_minutes < 0:
        raise InvalidRangeError("Buffer must not be negative.")
