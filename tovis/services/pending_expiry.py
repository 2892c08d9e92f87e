"""
Pending booking expiry.

Periodically finds PENDING bookings whose service time has fully passed
(scheduled_for + duration <= now) and cancels them as the system actor,
emitting booking_expired events. Expired slot holds are purged on the same
tick.

Runs as an asyncio task in the app lifespan.
Uses synchronous DB access (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import timedelta

from redis import Redis
from sqlalchemy.orm import Session

from ..models import Bookings
from .booking_machine import BookingStatus
from .booking_service import BookingService
from .clock import Clock, utcnow
from .errors import DomainError
from .holds import purge_expired_holds
from .timerange import as_utc

logger = logging.getLogger(__name__)


async def pending_expiry_loop(
    session_factory,
    redis: Redis | None,
    interval_seconds: int,
) -> None:
    """Periodic loop that expires stale PENDING bookings."""
    logger.info("pending_expiry_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(_run_once, session_factory, redis)
            except asyncio.CancelledError:
                logger.info("pending_expiry_loop cancelled")
                raise
            except Exception:
                logger.exception("pending_expiry_loop error")

            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        pass


def _run_once(session_factory, redis: Redis | None) -> None:
    db = session_factory()
    try:
        expire_stale_pending(db, redis=redis)
        purge_expired_holds(db)
    finally:
        db.close()


def expire_stale_pending(
    db: Session,
    clock: Clock = utcnow,
    redis: Redis | None = None,
) -> list[int]:
    """
    Cancel every PENDING booking that ended before now.

    Returns:
        IDs of expired bookings.
    """
    now = as_utc(clock())
    candidates = (
        db.query(Bookings.id, Bookings.scheduled_for, Bookings.duration_minutes_snapshot)
        .filter(
            Bookings.status == BookingStatus.PENDING.value,
            Bookings.scheduled_for < now,
        )
        .order_by(Bookings.scheduled_for.asc())
        .all()
    )
    # Release the read transaction before per-booking writes
    db.rollback()

    service = BookingService(db, clock=clock, redis=redis)
    expired: list[int] = []

    for booking_id, scheduled_for, duration in candidates:
        if as_utc(scheduled_for) + timedelta(minutes=duration) > now:
            continue
        try:
            if service.expire_pending(booking_id) is not None:
                expired.append(booking_id)
        except DomainError as e:
            logger.warning(f"Could not expire booking {booking_id}: {e.message}")

    if expired:
        logger.info(f"Expired {len(expired)} pending bookings")
    return expired
