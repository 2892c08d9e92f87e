# tovis/routers/calendar_blocks.py
# PATCH = 405 (blocks are replaced, never edited), DELETE = ALLOWED (hard)

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import AwareDatetime
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_actor, get_clock, get_redis, require_pro
from ..schemas.calendar_blocks import CalendarBlockCreate, CalendarBlockRead
from ..services.actor import Actor
from ..services.calendar_blocks import CalendarBlockStore, default_window
from ..services.clock import Clock
from ..services.timerange import TimeRange

router = APIRouter(prefix="/calendar/blocks", tags=["calendar_blocks"])


def get_block_store(
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
) -> CalendarBlockStore:
    return CalendarBlockStore(db, redis=redis)


@router.get("", response_model=list[CalendarBlockRead])
def list_calendar_blocks(
    start: AwareDatetime | None = Query(None, alias="from"),
    end: AwareDatetime | None = Query(None, alias="to"),
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    store: CalendarBlockStore = Depends(get_block_store),
):
    professional_id = require_pro(actor)
    default_start, default_end = default_window(clock())
    return store.list_in_window(professional_id, start or default_start, end or default_end)


@router.get("/{id}", response_model=CalendarBlockRead)
def get_calendar_block(
    id: int,
    actor: Actor = Depends(get_actor),
    store: CalendarBlockStore = Depends(get_block_store),
):
    require_pro(actor)
    return store.get(id, actor)


@router.post("", response_model=CalendarBlockRead, status_code=status.HTTP_201_CREATED)
def create_calendar_block(
    data: CalendarBlockCreate,
    actor: Actor = Depends(get_actor),
    store: CalendarBlockStore = Depends(get_block_store),
):
    professional_id = require_pro(actor)
    return store.create(professional_id, TimeRange(data.starts_at, data.ends_at), data.note)


@router.put("/{id}", response_model=CalendarBlockRead)
def replace_calendar_block(
    id: int,
    data: CalendarBlockCreate,
    actor: Actor = Depends(get_actor),
    store: CalendarBlockStore = Depends(get_block_store),
):
    require_pro(actor)
    return store.replace(id, actor, TimeRange(data.starts_at, data.ends_at), data.note)


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_calendar_block(
    id: int,
    actor: Actor = Depends(get_actor),
    store: CalendarBlockStore = Depends(get_block_store),
):
    require_pro(actor)
    store.delete(id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
