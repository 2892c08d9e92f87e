# tovis/services/holds.py
"""
Slot holds: a client's short reservation of a slot while they confirm.

A hold keeps [scheduled_for, scheduled_for + duration + buffer) off the
calendar for other clients until `expires_at`. It is turned into a booking by
BookingService.create_from_hold / reschedule, released by its client, or
purged by the background loop once expired.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..database import run_in_transaction
from ..models import BookingHolds, Professionals, Services
from .actor import Actor, Role
from .clock import Clock, utcnow
from .errors import ConflictError, ForbiddenError, NotFoundError
from .slots import (
    BookingConfig,
    ensure_bookable,
    ensure_within_booking_window,
    get_booking_config,
)
from .slots.availability import buffer_of
from .timerange import TimeRange, as_utc

logger = logging.getLogger(__name__)

HOLD_NOT_FOUND = "Hold not found."
HOLD_EXPIRED = "Hold expired. Please pick a new time."


def find_owned_hold(db: Session, hold_id: int, actor: Actor) -> BookingHolds:
    """Hold owned by the acting client; other clients' holds look missing."""
    hold = db.query(BookingHolds).filter(BookingHolds.id == hold_id).first()
    if not hold or actor.role != Role.CLIENT or hold.client_id != actor.user_id:
        raise NotFoundError(HOLD_NOT_FOUND)
    return hold


def is_expired(hold: BookingHolds, now: datetime) -> bool:
    return as_utc(hold.expires_at) <= now


def purge_expired_holds(
    db: Session,
    clock: Clock = utcnow,
    professional_id: int | None = None,
) -> int:
    """
    Delete holds that expired before now.

    Returns:
        Number of deleted holds.
    """
    now = as_utc(clock())

    def work():
        query = db.query(BookingHolds).filter(BookingHolds.expires_at <= now)
        if professional_id is not None:
            query = query.filter(BookingHolds.professional_id == professional_id)
        return query.delete(synchronize_session=False)

    deleted = run_in_transaction(db, work)
    if deleted:
        logger.info(f"Purged {deleted} expired slot holds")
    return deleted


class HoldService:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        config: BookingConfig | None = None,
    ):
        self.db = db
        self.clock = clock
        self.config = config or get_booking_config()

    def create(
        self,
        actor: Actor,
        professional_id: int,
        service_id: int,
        scheduled_for: datetime,
    ) -> tuple[BookingHolds, bool]:
        """
        Hold a slot for the acting client.

        Holding the same slot again returns the client's existing hold.

        Returns:
            (hold, created)
        """
        if actor.role != Role.CLIENT:
            raise ForbiddenError("Only clients can hold slots.")

        now = as_utc(self.clock())
        scheduled_for = as_utc(scheduled_for).replace(second=0, microsecond=0)
        ensure_within_booking_window(scheduled_for, now, self.config)

        def work():
            professional = self._lock_professional(professional_id)
            service = self.db.query(Services).filter(
                Services.id == service_id,
                Services.professional_id == professional_id,
                Services.is_active == 1,
            ).first()
            if not service:
                raise NotFoundError("Service not found.")

            self.db.query(BookingHolds).filter(
                BookingHolds.professional_id == professional_id,
                BookingHolds.expires_at <= now,
            ).delete(synchronize_session=False)

            existing = self.db.query(BookingHolds).filter(
                BookingHolds.professional_id == professional_id,
                BookingHolds.service_id == service.id,
                BookingHolds.client_id == actor.user_id,
                BookingHolds.scheduled_for == scheduled_for,
                BookingHolds.expires_at > now,
            ).first()
            if existing:
                return existing, False

            buffer = buffer_of(professional)
            rng = TimeRange.from_duration(scheduled_for, service.duration_min)
            ensure_bookable(self.db, professional, rng, buffer, now, exclude_client_id=actor.user_id)

            hold = BookingHolds(
                professional_id=professional_id,
                service_id=service.id,
                client_id=actor.user_id,
                scheduled_for=scheduled_for,
                duration_minutes=service.duration_min,
                buffer_minutes=buffer,
                expires_at=now + timedelta(minutes=self.config.hold_minutes),
            )
            self.db.add(hold)
            self.db.flush()
            return hold, True

        hold, created = run_in_transaction(self.db, work)

        if created:
            logger.info(
                f"Hold {hold.id} created: professional={professional_id} "
                f"client={actor.user_id} at {scheduled_for.isoformat()}"
            )
        return hold, created

    def get(self, hold_id: int, actor: Actor) -> BookingHolds:
        hold = find_owned_hold(self.db, hold_id, actor)
        if is_expired(hold, as_utc(self.clock())):
            raise ConflictError(HOLD_EXPIRED)
        return hold

    def release(self, hold_id: int, actor: Actor) -> None:
        """Delete the acting client's hold."""

        def work():
            hold = find_owned_hold(self.db, hold_id, actor)
            self.db.delete(hold)
            self.db.flush()

        run_in_transaction(self.db, work)
        logger.info(f"Hold {hold_id} released by client={actor.user_id}")

    def _lock_professional(self, professional_id: int) -> Professionals:
        professional = (
            self.db.query(Professionals)
            .filter(Professionals.id == professional_id, Professionals.is_active == 1)
            .with_for_update()
            .first()
        )
        if not professional:
            raise NotFoundError("Professional not found.")
        return professional
