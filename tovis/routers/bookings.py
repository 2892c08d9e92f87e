# tovis/routers/bookings.py
# DELETE = 405: bookings are never deleted, only cancelled

from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import AwareDatetime
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_actor, get_clock, get_redis
from ..schemas.bookings import BookingCreate, BookingRead, BookingStatusUpdate
from ..schemas.holds import HoldRef
from ..services.actor import Actor
from ..services.booking_service import BookingService
from ..services.clock import Clock

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    redis: Redis | None = Depends(get_redis),
) -> BookingService:
    return BookingService(db, clock=clock, redis=redis)


@router.get("", response_model=list[BookingRead])
def list_bookings(
    start: AwareDatetime | None = Query(None, alias="from"),
    end: AwareDatetime | None = Query(None, alias="to"),
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Acting professional's bookings scheduled in [from, to)."""
    now = service.clock()
    if start is None:
        start = now - timedelta(days=1)
    if end is None:
        end = start + timedelta(days=30)
    return service.list_for_professional(actor, start, end)


@router.get("/{id}", response_model=BookingRead)
def get_booking(
    id: int,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.get(id, actor)


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.create(
        actor,
        professional_id=data.professional_id,
        service_id=data.service_id,
        scheduled_for=data.scheduled_for,
    )


@router.post("/finalize", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def finalize_booking(
    data: HoldRef,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Book the slot held by the acting client."""
    return service.create_from_hold(actor, data.hold_id)


@router.post("/{id}/reschedule", response_model=BookingRead)
def reschedule_booking(
    id: int,
    data: HoldRef,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.reschedule(id, actor, data.hold_id)


@router.patch("/{id}/status", response_model=BookingRead)
def update_booking_status(
    id: int,
    data: BookingStatusUpdate,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.change_status(id, actor, data.status, data.reason)


@router.post("/{id}/start", response_model=BookingRead)
def start_booking_session(
    id: int,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.start(id, actor)


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
