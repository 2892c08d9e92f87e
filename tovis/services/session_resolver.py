# tovis/services/session_resolver.py
"""
Which booking a professional is working on right now.

    1) ACTIVE   – started, not finished (most recent start wins)
    2) UPCOMING – not started, scheduled within [now - lookback, now + lookahead]
    3) IDLE

Read-only: reflects the last committed state, takes no locks.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache

from sqlalchemy.orm import Session

from ..config import settings
from ..models import Bookings
from .booking_machine import OPEN_STATUSES
from .timerange import as_utc


class SessionMode(str, Enum):
    IDLE = "IDLE"
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class SessionWindow:
    lookback_minutes: int = 30
    lookahead_minutes: int = 180


@lru_cache
def get_session_window() -> SessionWindow:
    return SessionWindow(
        lookback_minutes=settings.session_lookback_minutes,
        lookahead_minutes=settings.session_lookahead_minutes,
    )


@dataclass(frozen=True)
class SessionView:
    mode: SessionMode
    booking: Bookings | None = None


def resolve(
    db: Session,
    professional_id: int,
    now: datetime,
    window: SessionWindow | None = None,
) -> SessionView:
    window = window or get_session_window()
    now = as_utc(now)
    open_statuses = [s.value for s in OPEN_STATUSES]

    active = (
        db.query(Bookings)
        .filter(
            Bookings.professional_id == professional_id,
            Bookings.started_at.isnot(None),
            Bookings.finished_at.is_(None),
            Bookings.status.in_(open_statuses),
        )
        .order_by(Bookings.started_at.desc(), Bookings.id.desc())
        .first()
    )
    if active:
        return SessionView(SessionMode.ACTIVE, active)

    upcoming = (
        db.query(Bookings)
        .filter(
            Bookings.professional_id == professional_id,
            Bookings.started_at.is_(None),
            Bookings.finished_at.is_(None),
            Bookings.status.in_(open_statuses),
            Bookings.scheduled_for >= now - timedelta(minutes=window.lookback_minutes),
            Bookings.scheduled_for <= now + timedelta(minutes=window.lookahead_minutes),
        )
        .order_by(Bookings.scheduled_for.asc(), Bookings.id.asc())
        .first()
    )
    if upcoming:
        return SessionView(SessionMode.UPCOMING, upcoming)

    return SessionView(SessionMode.IDLE)
