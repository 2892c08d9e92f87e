# tovis/routers/session.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_actor, get_clock
from ..schemas.bookings import BookingRead
from ..schemas.session import SessionRead
from ..services.actor import Actor, Role
from ..services.clock import Clock
from ..services.session_resolver import resolve

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=SessionRead)
def get_session(
    professional_id: int | None = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Current session of a professional (defaults to the acting one)."""
    if professional_id is None:
        professional_id = actor.professional_id
    if professional_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="professional_id required")

    if not (actor.owns_professional(professional_id) or actor.role in (Role.ADMIN, Role.SYSTEM)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    view = resolve(db, professional_id, clock())
    booking = BookingRead.model_validate(view.booking) if view.booking is not None else None
    return SessionRead(mode=view.mode.value, booking=booking)
