# tovis/services/slots/invalidator.py
"""
Cache invalidation for professional day slots.

Triggers:
✓ Working hours changed → invalidate all dates
✓ Calendar block created/deleted → invalidate affected dates
✓ Booking created/cancelled/expired → invalidate affected dates
"""

import logging
from datetime import date, timedelta

from redis import Redis
from redis.exceptions import RedisError

from ..timerange import TimeRange
from ..working_hours import WorkingHours
from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_professional_cache(
    redis: Redis | None,
    professional_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached day slots for a professional.

    Args:
        redis: Redis client (None → nothing cached, nothing to do)
        professional_id: Professional ID
        dates: Local dates to invalidate, or None for all cached dates

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    try:
        store = SlotsRedisStore(redis)
        # Bump first: a reader that started before this write can no longer store
        store.bump_generation(professional_id)
        deleted = store.delete_day_slots(professional_id, dates)
    except RedisError as e:
        # A stale cache must not fail the write that triggered it
        logger.error(f"Slot cache invalidation failed for professional={professional_id}: {e}")
        return 0

    logger.debug(f"Invalidated {deleted} slot cache keys for professional={professional_id}")
    return deleted


def get_affected_dates(working_hours: WorkingHours, rng: TimeRange) -> list[date]:
    """
    Local dates touched by a range, inclusive.

    A range ending exactly at local midnight does not touch the next day.
    """
    start = working_hours.local_date(rng.start)
    end = working_hours.local_date(rng.end - timedelta(microseconds=1))

    dates = []
    current = start
    while current <= end:
        dates.append(current)
        current += timedelta(days=1)

    return dates
