# tovis/services/booking_service.py
"""
Persistence side of the booking lifecycle.

Every write runs as one transaction holding the professional's row lock
(SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite), so the double-booking
check and the one-active-session check cannot race with a concurrent write
for the same professional.
"""

import logging
from datetime import date, datetime, timedelta

from redis import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import run_in_transaction
from ..models import Bookings, Professionals, Services
from .actor import SYSTEM_ACTOR, Actor, Role
from .booking_machine import (
    BookingPolicy,
    BookingStatus,
    TransitionPlan,
    get_booking_policy,
    is_terminal,
    start_session,
    transition,
)
from .clock import Clock, utcnow
from .errors import (
    ConcurrentSessionError,
    ConflictError,
    ForbiddenError,
    InvalidRangeError,
    NotFoundError,
)
from .events import emit_event
from .holds import HOLD_EXPIRED, find_owned_hold, is_expired
from .slots import (
    BookingConfig,
    ensure_bookable,
    ensure_within_booking_window,
    get_affected_dates,
    get_booking_config,
    invalidate_professional_cache,
)
from .slots.availability import buffer_of, load_working_hours
from .timerange import TimeRange, as_utc

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Expired before acceptance"


class BookingService:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        redis: Redis | None = None,
        config: BookingConfig | None = None,
        policy: BookingPolicy | None = None,
    ):
        self.db = db
        self.clock = clock
        self.redis = redis
        self.config = config or get_booking_config()
        self.policy = policy or get_booking_policy()

    # ── Create ───────────────────────────────────────────────────────────

    def create(
        self,
        actor: Actor,
        professional_id: int,
        service_id: int,
        scheduled_for: datetime,
    ) -> Bookings:
        """Create a PENDING booking request for the acting client."""
        if actor.role != Role.CLIENT:
            raise ForbiddenError("Only clients can request bookings.")

        now = as_utc(self.clock())
        scheduled_for = as_utc(scheduled_for)
        ensure_within_booking_window(scheduled_for, now, self.config)

        def work():
            professional = self._lock_professional(professional_id)
            service = self._get_active_service(professional_id, service_id)
            return self._insert(actor, professional, service, scheduled_for, now)

        booking, dates = run_in_transaction(self.db, work)
        self._after_create(booking, actor, dates)
        return booking

    def create_from_hold(self, actor: Actor, hold_id: int) -> Bookings:
        """Turn the acting client's unexpired hold into a PENDING booking."""
        if actor.role != Role.CLIENT:
            raise ForbiddenError("Only clients can request bookings.")

        now = as_utc(self.clock())

        def work():
            hold = find_owned_hold(self.db, hold_id, actor)
            professional = self._lock_professional(hold.professional_id)
            # Re-read under the lock: a concurrent finalize may have consumed it
            hold = find_owned_hold(self.db, hold_id, actor)
            if is_expired(hold, now):
                raise ConflictError(HOLD_EXPIRED)

            scheduled_for = as_utc(hold.scheduled_for)
            if scheduled_for < now:
                raise InvalidRangeError("That time is in the past.")

            service = self._get_active_service(hold.professional_id, hold.service_id)
            result = self._insert(actor, professional, service, scheduled_for, now)
            self.db.delete(hold)
            self.db.flush()
            return result

        booking, dates = run_in_transaction(self.db, work)
        self._after_create(booking, actor, dates, hold_id=hold_id)
        return booking

    def _insert(
        self,
        actor: Actor,
        professional: Professionals,
        service: Services,
        scheduled_for: datetime,
        now: datetime,
    ) -> tuple[Bookings, list[date]]:
        buffer = buffer_of(professional)
        rng = TimeRange.from_duration(scheduled_for, service.duration_min)
        dates = ensure_bookable(
            self.db, professional, rng, buffer, now, exclude_client_id=actor.user_id
        )

        booking = Bookings(
            professional_id=professional.id,
            client_id=actor.user_id,
            service_id=service.id,
            scheduled_for=scheduled_for,
            duration_minutes_snapshot=service.duration_min,
            buffer_minutes=buffer,
            status=BookingStatus.PENDING.value,
        )
        self.db.add(booking)
        self.db.flush()
        return booking, dates

    def _after_create(
        self,
        booking: Bookings,
        actor: Actor,
        dates: list[date],
        hold_id: int | None = None,
    ) -> None:
        logger.info(
            f"Booking {booking.id} created: professional={booking.professional_id} "
            f"client={actor.user_id} at {as_utc(booking.scheduled_for).isoformat()}"
        )
        invalidate_professional_cache(self.redis, booking.professional_id, dates)
        payload = {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "client_id": actor.user_id,
        }
        if hold_id is not None:
            payload["hold_id"] = hold_id
        emit_event(self.redis, "booking_created", payload)

    # ── Reschedule ───────────────────────────────────────────────────────

    def reschedule(self, booking_id: int, actor: Actor, hold_id: int) -> Bookings:
        """
        Move a booking to the time of the acting client's hold.

        Status is kept. The booking's old time frees up and the hold is
        consumed, both in the same transaction.
        """
        if actor.role != Role.CLIENT:
            raise ForbiddenError("Only clients can reschedule.")

        now = as_utc(self.clock())

        def work():
            booking = self._lock_booking(booking_id)
            if booking.client_id != actor.user_id:
                raise ForbiddenError()
            if is_terminal(booking):
                raise ConflictError("This booking cannot be rescheduled.")
            if booking.started_at is not None:
                raise ConflictError("This booking has started and cannot be rescheduled.")

            hold = find_owned_hold(self.db, hold_id, actor)
            if is_expired(hold, now):
                raise ConflictError(HOLD_EXPIRED)
            if (
                hold.professional_id != booking.professional_id
                or hold.service_id != booking.service_id
            ):
                raise ConflictError("Hold does not match this booking.")

            new_start = as_utc(hold.scheduled_for)
            if new_start < now:
                raise InvalidRangeError("That time is in the past.")

            professional = self.db.get(Professionals, booking.professional_id)
            buffer = buffer_of(professional)
            old_start = as_utc(booking.scheduled_for)
            old_rng = TimeRange.from_duration(old_start, booking.duration_minutes_snapshot)
            rng = TimeRange.from_duration(new_start, booking.duration_minutes_snapshot)

            dates = ensure_bookable(
                self.db,
                professional,
                rng,
                buffer,
                now,
                exclude_booking_id=booking.id,
                exclude_client_id=actor.user_id,
            )
            dates += get_affected_dates(load_working_hours(professional), old_rng)

            booking.scheduled_for = new_start
            booking.buffer_minutes = buffer
            self.db.delete(hold)
            self.db.flush()
            return booking, old_start, sorted(set(dates))

        booking, old_start, dates = run_in_transaction(self.db, work)

        logger.info(
            f"Booking {booking.id} rescheduled: {old_start.isoformat()} -> "
            f"{as_utc(booking.scheduled_for).isoformat()}"
        )
        invalidate_professional_cache(self.redis, booking.professional_id, dates)
        emit_event(self.redis, "booking_rescheduled", {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "client_id": booking.client_id,
            "from": old_start.isoformat(),
            "to": as_utc(booking.scheduled_for).isoformat(),
        })
        return booking

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, booking_id: int, actor: Actor) -> Bookings:
        """Booking visible to its professional, its client or the system."""
        booking = self.db.get(Bookings, booking_id)
        if not booking:
            raise NotFoundError("Booking not found.")
        if not (
            actor.owns_professional(booking.professional_id)
            or actor.is_system
            or (actor.role == Role.CLIENT and actor.user_id == booking.client_id)
        ):
            raise ForbiddenError()
        return booking

    def list_for_professional(
        self,
        actor: Actor,
        start: datetime,
        end: datetime,
    ) -> list[Bookings]:
        if not actor.is_pro:
            raise ForbiddenError("Only professionals can list their bookings.")
        window = TimeRange(as_utc(start), as_utc(end))
        return (
            self.db.query(Bookings)
            .filter(
                Bookings.professional_id == actor.professional_id,
                Bookings.scheduled_for >= window.start,
                Bookings.scheduled_for < window.end,
            )
            .order_by(Bookings.scheduled_for.asc(), Bookings.id.asc())
            .all()
        )

    # ── Transitions ──────────────────────────────────────────────────────

    def change_status(
        self,
        booking_id: int,
        actor: Actor,
        status: BookingStatus | str,
        reason: str | None = None,
    ) -> Bookings:
        """Apply a status transition (accept / complete / cancel)."""
        now = as_utc(self.clock())

        def work():
            booking = self._lock_booking(booking_id)
            previous = booking.status
            plan = transition(booking, status, actor, now, self.policy, reason)
            self._apply(booking, plan)
            return booking, previous, plan

        booking, previous, plan = self._run_guarded(work)

        logger.info(
            f"Booking {booking.id}: {previous} -> {plan.status.value} "
            f"by {actor.role.value}:{actor.user_id}"
        )
        if plan.status == BookingStatus.CANCELLED:
            self._invalidate_for(booking)
        emit_event(self.redis, "booking_status_changed", {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "client_id": booking.client_id,
            "from": previous,
            "to": plan.status.value,
        })
        if plan.starts_session:
            self._emit_started(booking)
        return booking

    def start(self, booking_id: int, actor: Actor) -> Bookings:
        """Start the session of an ACCEPTED booking (sets started_at)."""
        now = as_utc(self.clock())

        def work():
            booking = self._lock_booking(booking_id)
            plan = start_session(booking, actor, now, self.policy)
            self._apply(booking, plan)
            return booking, plan

        booking, plan = self._run_guarded(work)

        if plan.starts_session:
            logger.info(f"Booking {booking.id}: session started by professional={booking.professional_id}")
            self._emit_started(booking)
        return booking

    def expire_pending(self, booking_id: int) -> Bookings | None:
        """
        Cancel a PENDING booking whose time has fully passed.

        Returns None when the booking is no longer eligible (accepted,
        cancelled or not yet over) by the time the lock is held.
        """
        now = as_utc(self.clock())

        def work():
            booking = self._lock_booking(booking_id)
            if booking.status != BookingStatus.PENDING.value:
                return None
            end = as_utc(booking.scheduled_for) + timedelta(minutes=booking.duration_minutes_snapshot)
            if end > now:
                return None
            plan = transition(booking, BookingStatus.CANCELLED, SYSTEM_ACTOR, now, self.policy, EXPIRED_REASON)
            self._apply(booking, plan)
            return booking

        booking = self._run_guarded(work)
        if booking is None:
            return None

        logger.info(f"Booking {booking.id}: expired before acceptance")
        self._invalidate_for(booking)
        emit_event(self.redis, "booking_expired", {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "client_id": booking.client_id,
        })
        return booking

    # ── Helpers ──────────────────────────────────────────────────────────

    def _run_guarded(self, work):
        """
        Run a transition transaction.

        Transitions only update status and session timestamps, so a unique
        violation here can only come from uq_bookings_one_active_per_pro.
        """
        try:
            return run_in_transaction(self.db, work)
        except IntegrityError as exc:
            raise ConcurrentSessionError() from exc

    def _apply(self, booking: Bookings, plan: TransitionPlan) -> None:
        if plan.starts_session:
            self._ensure_no_active_session(booking)

        booking.status = plan.status.value
        booking.started_at = plan.started_at
        booking.finished_at = plan.finished_at
        if plan.cancel_reason is not None:
            booking.cancel_reason = plan.cancel_reason
        self.db.flush()

    def _ensure_no_active_session(self, booking: Bookings) -> None:
        other = (
            self.db.query(Bookings.id)
            .filter(
                Bookings.professional_id == booking.professional_id,
                Bookings.id != booking.id,
                Bookings.started_at.isnot(None),
                Bookings.finished_at.is_(None),
            )
            .first()
        )
        if other:
            raise ConcurrentSessionError(
                f"Finish booking {other.id} before starting another session."
            )

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

    def _get_active_service(self, professional_id: int, service_id: int) -> Services:
        service = self.db.query(Services).filter(
            Services.id == service_id,
            Services.professional_id == professional_id,
            Services.is_active == 1,
        ).first()
        if not service:
            raise NotFoundError("Service not found.")
        return service

    def _lock_booking(self, booking_id: int) -> Bookings:
        booking = self.db.get(Bookings, booking_id)
        if not booking:
            raise NotFoundError("Booking not found.")
        self.db.query(Professionals.id).filter(
            Professionals.id == booking.professional_id
        ).with_for_update().first()
        # Re-read under the lock
        self.db.refresh(booking)
        return booking

    def _invalidate_for(self, booking: Bookings) -> None:
        professional = self.db.get(Professionals, booking.professional_id)
        rng = TimeRange.from_duration(
            as_utc(booking.scheduled_for),
            booking.duration_minutes_snapshot + (booking.buffer_minutes or 0),
        )
        dates = get_affected_dates(load_working_hours(professional), rng) if professional else None
        invalidate_professional_cache(self.redis, booking.professional_id, dates)

    def _emit_started(self, booking: Bookings) -> None:
        emit_event(self.redis, "booking_started", {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "client_id": booking.client_id,
        })
