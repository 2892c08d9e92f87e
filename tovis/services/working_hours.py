# tovis/services/working_hours.py
"""
Weekly working hours of a professional, in the professional's local time.

Stored as JSON text on the professional row. Three shapes are accepted:

    {"mon": {"enabled": true, "start": "09:00", "end": "17:00"}, ...}
    {"mon": [["09:00", "12:00"], ["13:00", "17:00"]], ...}
    {"0": [["09:00", "17:00"]], ...}          # 0 = Monday

Serialization always writes the list-per-day-name shape.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidRangeError
from .timerange import TimeRange, as_utc, merge

logger = logging.getLogger(__name__)

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

Interval = tuple[int, int]  # (start_min, end_min) from local midnight

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time_str(value) -> int | None:
    """
    Parse "H:MM" / "HH:MM" into minutes from midnight.

    "24:00" is accepted as end of day. Returns None for anything else.
    """
    if not isinstance(value, str):
        return None
    m = _HHMM.match(value.strip())
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh == 24 and mm == 0:
        return 24 * 60
    if hh > 23 or mm > 59:
        return None
    return hh * 60 + mm


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes from midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time_zone(tz) -> bool:
    if not isinstance(tz, str) or not tz.strip():
        return False
    try:
        ZoneInfo(tz.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def sanitize_time_zone(tz, fallback: str = "UTC") -> str:
    return tz.strip() if is_valid_time_zone(tz) else fallback


def _default_days() -> dict[int, tuple[Interval, ...]]:
    # Mon-Fri 09:00-17:00
    return {weekday: ((9 * 60, 17 * 60),) for weekday in range(5)}


@dataclass(frozen=True)
class WorkingHours:
    time_zone: str = "UTC"
    days: dict[int, tuple[Interval, ...]] = field(default_factory=dict)
    used_default: bool = False

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    def intervals_for(self, weekday: int) -> tuple[Interval, ...]:
        return self.days.get(weekday, ())

    def local_date(self, instant: datetime) -> date:
        return as_utc(instant).astimezone(self.zone).date()

    def day_bounds(self, day: date) -> TimeRange:
        """Local calendar day as a UTC range (23 or 25 hours on DST days)."""
        start = datetime.combine(day, time.min, tzinfo=self.zone)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.zone)
        return TimeRange(as_utc(start), as_utc(end))

    def open_ranges(self, day: date) -> list[TimeRange]:
        """Open intervals of a local calendar day, as UTC ranges."""
        midnight = datetime.combine(day, time.min, tzinfo=self.zone)
        ranges = []
        for start_min, end_min in self.intervals_for(day.weekday()):
            start = as_utc(midnight + timedelta(minutes=start_min))
            end = as_utc(midnight + timedelta(minutes=end_min))
            if end > start:
                ranges.append(TimeRange(start, end))
        return merge(ranges)

    def to_json(self) -> dict[str, list[list[str]]]:
        return {
            name: [
                [minutes_to_time_str(s), minutes_to_time_str(e)]
                for s, e in self.intervals_for(weekday)
            ]
            for weekday, name in enumerate(DAY_NAMES)
        }

    def dumps(self) -> str:
        return json.dumps(self.to_json())


def default_working_hours(time_zone: str = "UTC") -> WorkingHours:
    return WorkingHours(time_zone=sanitize_time_zone(time_zone), days=_default_days(), used_default=True)


def _parse_interval(raw, strict: bool) -> Interval | None:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        if strict:
            raise InvalidRangeError(f"Invalid interval: {raw!r}")
        return None
    start = parse_time_str(raw[0])
    end = parse_time_str(raw[1])
    if start is None or end is None or end <= start:
        if strict:
            raise InvalidRangeError(f"Invalid interval: {raw!r}")
        return None
    return start, end


def _parse_day(value, strict: bool) -> list[Interval]:
    if value is None:
        return []

    if isinstance(value, dict):
        if value.get("enabled") is False:
            return []
        interval = _parse_interval([value.get("start"), value.get("end")], strict)
        return [interval] if interval else []

    if isinstance(value, list):
        intervals = [_parse_interval(item, strict) for item in value]
        return [i for i in intervals if i]

    if strict:
        raise InvalidRangeError(f"Invalid day schedule: {value!r}")
    return []


def parse_working_hours(raw, time_zone: str = "UTC", strict: bool = False) -> WorkingHours:
    """
    Build WorkingHours from stored JSON (str or already-decoded dict).

    Lenient mode skips malformed intervals and falls back to the default
    schedule when nothing usable is stored. Strict mode raises
    InvalidRangeError instead.
    """
    tz = sanitize_time_zone(time_zone)

    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            if strict:
                raise InvalidRangeError("Working hours must be valid JSON.")
            logger.warning("Stored working hours are not valid JSON, using defaults")
            raw = {}

    if not isinstance(raw, dict):
        if strict:
            raise InvalidRangeError("Working hours must be an object keyed by weekday.")
        raw = {}

    if not raw:
        if strict:
            return WorkingHours(time_zone=tz, days={})
        return default_working_hours(tz)

    days: dict[int, tuple[Interval, ...]] = {}
    for weekday, name in enumerate(DAY_NAMES):
        # Format B (numeric keys) wins over Format A (day names)
        if str(weekday) in raw:
            value = raw[str(weekday)]
        elif name in raw:
            value = raw[name]
        else:
            continue
        intervals = sorted(_parse_day(value, strict))
        if intervals:
            days[weekday] = tuple(intervals)

    unknown = set(raw) - set(DAY_NAMES) - {str(i) for i in range(7)}
    if unknown and strict:
        raise InvalidRangeError(f"Unknown weekday keys: {', '.join(sorted(unknown))}")

    return WorkingHours(time_zone=tz, days=days)
