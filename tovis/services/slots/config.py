# tovis/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings



@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        horizon_days: How many days ahead to show slots
        min_advance_minutes: Minimum minutes before a slot can be booked
        slot_step_minutes: Grid step in minutes (5/10/15/30/60)
        cache_ttl_seconds: Redis cache TTL for computed day slots
        hold_minutes: How long a slot hold keeps a time reserved
    """
    horizon_days: int = 60
    min_advance_minutes: int = 0
    slot_step_minutes: int = 15
    cache_ttl_seconds: int = 86400
    hold_minutes: int = 10

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (5, 10, 15, 30, 60):
            raise ValueError(
                f"slot_step_minutes must be 5, 10, 15, 30 or 60, got {self.slot_step_minutes}"
            )
        if self.horizon_days < 1:
            raise ValueError(f"horizon_days must be positive, got {self.horizon_days}")
        if self.min_advance_minutes < 0:
            raise ValueError(f"min_advance_minutes must be >= 0, got {self.min_advance_minutes}")
        if self.hold_minutes < 1:
            raise ValueError(f"hold_minutes must be positive, got {self.hold_minutes}")


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton), read from settings."""
    return BookingConfig(
        horizon_days=settings.horizon_days,
        min_advance_minutes=settings.min_advance_minutes,
        slot_step_minutes=settings.slot_step_minutes,
        cache_ttl_seconds=settings.slot_cache_ttl_seconds,
        hold_minutes=settings.hold_ttl_minutes,
    )


