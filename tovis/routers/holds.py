# tovis/routers/holds.py
# Holds are client-only; another client's hold answers 404, never 403

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_actor, get_clock
from ..schemas.holds import HoldCreate, HoldRead
from ..services.actor import Actor
from ..services.clock import Clock
from ..services.holds import HoldService

router = APIRouter(prefix="/holds", tags=["holds"])


def get_hold_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> HoldService:
    return HoldService(db, clock=clock)


@router.post("", response_model=HoldRead, status_code=status.HTTP_201_CREATED)
def create_hold(
    data: HoldCreate,
    response: Response,
    actor: Actor = Depends(get_actor),
    service: HoldService = Depends(get_hold_service),
):
    hold, created = service.create(
        actor,
        professional_id=data.professional_id,
        service_id=data.service_id,
        scheduled_for=data.scheduled_for,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return hold


@router.get("/{id}", response_model=HoldRead)
def get_hold(
    id: int,
    actor: Actor = Depends(get_actor),
    service: HoldService = Depends(get_hold_service),
):
    return service.get(id, actor)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def release_hold(
    id: int,
    actor: Actor = Depends(get_actor),
    service: HoldService = Depends(get_hold_service),
):
    service.release(id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
