# tovis/services/slots/availability.py
"""
Service availability for a professional.

Loads the professional's working hours, calendar blocks and non-cancelled
bookings, computes slots per local day (pure calculator) and caches each
day in Redis. Min-advance and horizon limits are applied at read time, so
cached days stay valid as "now" moves. Active slot holds live for minutes
only; they are never cached and are removed from the result on every read.

Also holds the bookability check shared by every write that puts an
appointment on the calendar (hold, booking, finalize, reschedule).
"""

import logging
from datetime import date, datetime, timedelta

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..errors import ConflictError, InvalidRangeError, NotFoundError
from ..timerange import TimeRange, as_utc, covers, merge, overlaps
from ..working_hours import WorkingHours, parse_working_hours
from .calculator import calculate_day_slots, local_days
from .config import BookingConfig, get_booking_config
from .invalidator import get_affected_dates
from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)

# Upper bound of a booking's duration, used to widen range queries
MAX_BOOKING_MINUTES = 24 * 60
# Upper bound of the buffer a professional may keep after each appointment
MAX_BUFFER_MINUTES = 120

TAKEN_MESSAGE = "That time is no longer available. Please pick another time."
HELD_MESSAGE = "Someone is already holding that time. Try another slot."


def calculate_availability(
    db: Session,
    professional_id: int,
    service_id: int,
    start: datetime,
    end: datetime,
    now: datetime,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> dict:
    """
    Calculate bookable slot starts for a service within [start, end].

    Returns:
        Dict for SlotsResponse.
    """
    config = config or get_booking_config()
    window = TimeRange(as_utc(start), as_utc(end))
    now = as_utc(now)

    # Step 1: Professional + service
    professional = _get_professional(db, professional_id)
    if not professional:
        raise NotFoundError("Professional not found.")

    service = _get_service(db, professional_id, service_id)
    if not service:
        raise NotFoundError("Service not found.")

    working_hours = load_working_hours(professional)
    duration = service.duration_min
    buffer = buffer_of(professional)

    result = {
        "professional_id": professional_id,
        "service_id": service_id,
        "time_zone": working_hours.time_zone,
        "duration_minutes": duration,
        "step_minutes": config.slot_step_minutes,
        "start": window.start,
        "end": window.end,
        "slots": [],
    }

    # Step 2: Clamp the window to [now + min_advance, now + horizon]
    earliest = max(window.start, now + timedelta(minutes=config.min_advance_minutes))
    latest = min(window.end, now + timedelta(days=config.horizon_days))
    latest_start = latest - timedelta(minutes=duration)
    if latest_start < earliest:
        return result

    effective = TimeRange(earliest, latest)
    days = local_days(working_hours, effective)

    # Step 3: Per-day slots, cached. The generation is read before any busy
    # range is loaded; a write that lands in between makes the store a no-op.
    store, generation = _open_cache(redis, config, professional_id)
    busy: list[TimeRange] | None = None
    slots: list[datetime] = []

    for day in days:
        cached = _read_cache(store, professional_id, day, duration, earliest, latest_start)
        if cached is not None:
            slots.extend(cached)
            continue

        if busy is None:
            # Whole local days, plus the buffer that may run past closing
            busy_window = TimeRange(
                working_hours.day_bounds(days[0]).start,
                working_hours.day_bounds(days[-1]).end + timedelta(minutes=buffer),
            )
            busy = load_busy_ranges(db, professional_id, busy_window)

        day_slots = calculate_day_slots(
            working_hours, day, busy, duration, config.slot_step_minutes, buffer
        )
        _write_cache(store, professional_id, day, duration, day_slots, generation)
        slots.extend(s for s in day_slots if earliest <= s <= latest_start)

    # Step 4: Active holds
    slots = sorted(set(slots))
    if slots:
        span = timedelta(minutes=duration + buffer)
        held = load_hold_ranges(
            db, professional_id, TimeRange(slots[0], slots[-1] + span), now
        )
        if held:
            slots = [
                s for s in slots
                if not any(overlaps(h, TimeRange(s, s + span)) for h in held)
            ]

    result["slots"] = slots
    return result


def ensure_within_booking_window(
    scheduled_for: datetime,
    now: datetime,
    config: BookingConfig,
) -> None:
    """Reject start times before now + min_advance or beyond the horizon."""
    if scheduled_for < now + timedelta(minutes=config.min_advance_minutes):
        raise InvalidRangeError("That time is too soon or in the past.")
    if scheduled_for > now + timedelta(days=config.horizon_days):
        raise InvalidRangeError(
            f"Bookings can be made at most {config.horizon_days} days ahead."
        )


def ensure_bookable(
    db: Session,
    professional,
    rng: TimeRange,
    buffer_minutes: int,
    now: datetime,
    exclude_booking_id: int | None = None,
    exclude_client_id: int | None = None,
) -> list[date]:
    """
    Check that an appointment can go on the professional's calendar.

    The appointment itself must lie inside working hours. The appointment
    plus its buffer must not touch a block, another booking (with its
    buffer) or somebody else's active hold. Call it under the professional's
    row lock.

    Returns:
        Local dates the appointment touches.
    """
    working_hours = load_working_hours(professional)
    dates = get_affected_dates(working_hours, rng)

    open_ranges = merge(o for day in dates for o in working_hours.open_ranges(day))
    if not any(covers(o, rng) for o in open_ranges):
        raise ConflictError("That time is outside working hours.")

    occupied = TimeRange(rng.start, rng.end + timedelta(minutes=buffer_minutes))

    busy = load_busy_ranges(db, professional.id, occupied, exclude_booking_id)
    if any(overlaps(b, occupied) for b in busy):
        raise ConflictError(TAKEN_MESSAGE)

    held = load_hold_ranges(db, professional.id, occupied, now, exclude_client_id)
    if any(overlaps(h, occupied) for h in held):
        raise ConflictError(HELD_MESSAGE)

    return dates


def load_busy_ranges(
    db: Session,
    professional_id: int,
    window: TimeRange,
    exclude_booking_id: int | None = None,
) -> list[TimeRange]:
    """Ranges occupied by calendar blocks and non-cancelled bookings (with buffer)."""
    busy = [
        TimeRange(as_utc(b.starts_at), as_utc(b.ends_at))
        for b in _get_blocks(db, professional_id, window)
    ]

    for booking in _get_bookings(db, professional_id, window):
        if booking.id == exclude_booking_id:
            continue
        rng = TimeRange.from_duration(
            as_utc(booking.scheduled_for),
            booking.duration_minutes_snapshot + (booking.buffer_minutes or 0),
        )
        if overlaps(rng, window):
            busy.append(rng)

    return busy


def load_hold_ranges(
    db: Session,
    professional_id: int,
    window: TimeRange,
    now: datetime,
    exclude_client_id: int | None = None,
) -> list[TimeRange]:
    """Ranges reserved by unexpired holds (duration plus buffer)."""
    ranges = []
    for hold in _get_holds(db, professional_id, window, now):
        if exclude_client_id is not None and hold.client_id == exclude_client_id:
            continue
        rng = TimeRange.from_duration(
            as_utc(hold.scheduled_for),
            hold.duration_minutes + (hold.buffer_minutes or 0),
        )
        if overlaps(rng, window):
            ranges.append(rng)
    return ranges


def load_working_hours(professional) -> WorkingHours:
    return parse_working_hours(professional.working_hours, professional.time_zone)


def buffer_of(professional) -> int:
    return max(0, min(MAX_BUFFER_MINUTES, professional.buffer_minutes or 0))


# ── Cache helpers ────────────────────────────────────────────────────────


def _open_cache(
    redis: Redis | None,
    config: BookingConfig,
    professional_id: int,
) -> tuple[SlotsRedisStore | None, int | None]:
    if redis is None:
        return None, None
    store = SlotsRedisStore(redis, config)
    try:
        return store, store.get_generation(professional_id)
    except RedisError as e:
        logger.warning(f"Slot cache unavailable, calculating on the fly: {e}")
        return None, None


def _read_cache(
    store: SlotsRedisStore | None,
    professional_id: int,
    day: date,
    duration: int,
    earliest: datetime,
    latest_start: datetime,
) -> list[datetime] | None:
    if store is None:
        return None
    try:
        return store.get_day_slots(professional_id, day, duration, earliest, latest_start)
    except RedisError as e:
        logger.warning(f"Slot cache read failed, calculating on the fly: {e}")
        return None


def _write_cache(
    store: SlotsRedisStore | None,
    professional_id: int,
    day: date,
    duration: int,
    slots: list[datetime],
    generation: int | None,
) -> None:
    if store is None:
        return
    try:
        stored = store.store_day_slots(professional_id, day, duration, slots, generation)
    except RedisError as e:
        logger.warning(f"Slot cache write failed: {e}")
        return
    if not stored:
        logger.debug(f"Skipped caching {day} for professional={professional_id}: invalidated meanwhile")


# ── Database helpers ─────────────────────────────────────────────────────


def _get_professional(db: Session, professional_id: int):
    """Get active professional by ID."""
    from ...models import Professionals
    return db.query(Professionals).filter(
        Professionals.id == professional_id,
        Professionals.is_active == 1,
    ).first()


def _get_service(db: Session, professional_id: int, service_id: int):
    """Get active service offered by the professional."""
    from ...models import Services
    return db.query(Services).filter(
        Services.id == service_id,
        Services.professional_id == professional_id,
        Services.is_active == 1,
    ).first()


def _get_blocks(db: Session, professional_id: int, window: TimeRange) -> list:
    """Get calendar blocks overlapping the window."""
    from ...models import CalendarBlocks
    return (
        db.query(CalendarBlocks)
        .filter(
            CalendarBlocks.professional_id == professional_id,
            CalendarBlocks.starts_at < window.end,
            CalendarBlocks.ends_at > window.start,
        )
        .all()
    )


def _get_bookings(db: Session, professional_id: int, window: TimeRange) -> list:
    """Get non-cancelled bookings that may overlap the window."""
    from ...models import Bookings
    from ..booking_machine import BookingStatus

    reach = timedelta(minutes=MAX_BOOKING_MINUTES + MAX_BUFFER_MINUTES)
    return (
        db.query(Bookings)
        .filter(
            Bookings.professional_id == professional_id,
            Bookings.scheduled_for < window.end,
            Bookings.scheduled_for > window.start - reach,
            Bookings.status != BookingStatus.CANCELLED.value,
        )
        .all()
    )


def _get_holds(db: Session, professional_id: int, window: TimeRange, now: datetime) -> list:
    """Get unexpired holds that may overlap the window."""
    from ...models import BookingHolds

    reach = timedelta(minutes=MAX_BOOKING_MINUTES + MAX_BUFFER_MINUTES)
    return (
        db.query(BookingHolds)
        .filter(
            BookingHolds.professional_id == professional_id,
            BookingHolds.expires_at > now,
            BookingHolds.scheduled_for < window.end,
            BookingHolds.scheduled_for > window.start - reach,
        )
        .all()
    )
