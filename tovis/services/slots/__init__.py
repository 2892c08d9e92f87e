# tovis/services/slots/__init__.py
"""
Slots calculation module.

Pure calculator (working hours minus busy ranges) plus a DB-backed
availability layer that caches per-day results in Redis Sorted Sets.
"""

from .config import BookingConfig, get_booking_config
from .calculator import calculate_day_slots, calculate_slots
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_professional_cache, get_affected_dates
from .availability import (
    calculate_availability,
    ensure_bookable,
    ensure_within_booking_window,
    load_busy_ranges,
    load_hold_ranges,
)

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "calculate_day_slots",
    "calculate_slots",
    "SlotsRedisStore",
    "invalidate_professional_cache",
    "get_affected_dates",
    "calculate_availability",
    "ensure_bookable",
    "ensure_within_booking_window",
    "load_busy_ranges",
    "load_hold_ranges",
]
