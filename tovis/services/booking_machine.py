# tovis/services/booking_machine.py
"""
Booking lifecycle rules.

    PENDING  → ACCEPTED | CANCELLED
    ACCEPTED → COMPLETED | CANCELLED
    COMPLETED, CANCELLED: terminal

Starting a session (setting started_at) is a separate action on an ACCEPTED
booking unless the policy makes acceptance start it. Functions here are pure:
they validate and return a TransitionPlan; persisting it and the
one-active-session check live in booking_service.py.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache

from ..config import settings
from .actor import Actor, Role
from .errors import (
    AlreadyFinalizedError,
    ForbiddenError,
    InvalidTransitionError,
)
from .timerange import as_utc


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
OPEN_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.ACCEPTED})

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.ACCEPTED, BookingStatus.CANCELLED}),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class BookingPolicy:
    """
    Attributes:
        start_on_accept: ACCEPTED also starts the session (sets started_at)
        client_can_cancel_accepted: clients may cancel after acceptance
        start_window_minutes: a session may start this many minutes before or
            after scheduled_for; 0 disables the check
    """
    start_on_accept: bool = False
    client_can_cancel_accepted: bool = True
    start_window_minutes: int = 15


@lru_cache
def get_booking_policy() -> BookingPolicy:
    return BookingPolicy(
        start_on_accept=settings.start_on_accept,
        client_can_cancel_accepted=settings.client_can_cancel_accepted,
        start_window_minutes=settings.start_window_minutes,
    )


@dataclass(frozen=True)
class TransitionPlan:
    """New field values for a booking after a validated transition."""

    status: BookingStatus
    started_at: datetime | None
    finished_at: datetime | None
    cancel_reason: str | None = None
    starts_session: bool = False


def is_terminal(booking) -> bool:
    return BookingStatus(booking.status) in TERMINAL_STATUSES or booking.finished_at is not None


def is_active_session(booking) -> bool:
    return booking.started_at is not None and booking.finished_at is None


def transition(
    booking,
    requested: BookingStatus | str,
    actor: Actor,
    now: datetime,
    policy: BookingPolicy | None = None,
    reason: str | None = None,
) -> TransitionPlan:
    """
    Validate a status change and return the resulting field values.

    Raises:
        AlreadyFinalizedError: booking is COMPLETED/CANCELLED
        InvalidTransitionError: no such edge from the current status
        ForbiddenError: actor may not perform this change
    """
    policy = policy or get_booking_policy()
    try:
        target = BookingStatus(requested)
    except ValueError:
        raise InvalidTransitionError(f"Unknown status: {requested}") from None

    current = BookingStatus(booking.status)

    if is_terminal(booking):
        raise AlreadyFinalizedError()

    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(f"Invalid transition: {current.value} -> {target.value}")

    _authorize(booking, current, target, actor, policy)

    started_at = booking.started_at
    finished_at = booking.finished_at
    cancel_reason = None
    starts_session = False

    if target == BookingStatus.ACCEPTED:
        if policy.start_on_accept and started_at is None:
            started_at = now
            starts_session = True

    elif target == BookingStatus.COMPLETED:
        finished_at = now

    elif target == BookingStatus.CANCELLED:
        if started_at is not None:
            # Close the running session so it no longer counts as active
            finished_at = now
        cancel_reason = reason or _default_cancel_reason(actor)

    return TransitionPlan(
        status=target,
        started_at=started_at,
        finished_at=finished_at,
        cancel_reason=cancel_reason,
        starts_session=starts_session,
    )


def start_session(
    booking,
    actor: Actor,
    now: datetime,
    policy: BookingPolicy | None = None,
) -> TransitionPlan:
    """
    Validate starting the session of an ACCEPTED booking.

    Idempotent: an already started booking returns its current values with
    starts_session=False.
    """
    policy = policy or get_booking_policy()

    if not actor.owns_professional(booking.professional_id):
        raise ForbiddenError("You can only start your own bookings.")

    status = BookingStatus(booking.status)
    if status == BookingStatus.CANCELLED:
        raise AlreadyFinalizedError("Cancelled bookings cannot be started.")
    if is_terminal(booking):
        raise AlreadyFinalizedError("This session is already finished.")
    if status == BookingStatus.PENDING:
        raise InvalidTransitionError("You must accept this appointment before you can start it.")

    if booking.started_at is not None:
        return TransitionPlan(
            status=status,
            started_at=booking.started_at,
            finished_at=booking.finished_at,
        )

    if policy.start_window_minutes > 0:
        window = timedelta(minutes=policy.start_window_minutes)
        scheduled_for = as_utc(booking.scheduled_for)
        if not (scheduled_for - window <= now <= scheduled_for + window):
            raise InvalidTransitionError(
                f"You can start this appointment {policy.start_window_minutes} minutes "
                f"before or after the scheduled time."
            )

    return TransitionPlan(
        status=status,
        started_at=now,
        finished_at=None,
        starts_session=True,
    )


def _authorize(
    booking,
    current: BookingStatus,
    target: BookingStatus,
    actor: Actor,
    policy: BookingPolicy,
) -> None:
    is_owner = actor.owns_professional(booking.professional_id)

    if target in (BookingStatus.ACCEPTED, BookingStatus.COMPLETED):
        if not is_owner:
            raise ForbiddenError("Only the professional can update this booking.")
        return

    # CANCELLED
    if is_owner or actor.is_system:
        return

    if actor.role == Role.CLIENT and actor.user_id == booking.client_id:
        if current == BookingStatus.ACCEPTED and not policy.client_can_cancel_accepted:
            raise ForbiddenError("Accepted bookings can only be cancelled by the professional.")
        return

    raise ForbiddenError("You can only cancel your own bookings.")


def _default_cancel_reason(actor: Actor) -> str:
    if actor.is_system:
        return "Cancelled by system"
    if actor.role == Role.CLIENT:
        return "Cancelled by client"
    return "Cancelled by professional"
