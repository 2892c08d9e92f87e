# tovis/routers/availability.py
"""
Availability API.

GET /availability - bookable slot starts for a professional's service
"""

from datetime import timedelta
from fastapi import APIRouter, Depends, Query
from pydantic import AwareDatetime
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_clock, get_redis
from ..schemas.slots import SlotsResponse
from ..services.clock import Clock
from ..services.slots import calculate_availability, get_booking_config


router = APIRouter(prefix="/availability", tags=["availability"])

DEFAULT_WINDOW = timedelta(days=1)


@router.get("", response_model=SlotsResponse)
def get_availability(
    professional_id: int,
    service_id: int,
    start: AwareDatetime | None = Query(None, alias="from"),
    end: AwareDatetime | None = Query(None, alias="to"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    redis: Redis | None = Depends(get_redis),
):
    """Slot starts whose [start, start + duration) fits in [from, to]."""
    now = clock()
    if start is None:
        start = now
    if end is None:
        end = start + DEFAULT_WINDOW

    result = calculate_availability(
        db=db,
        professional_id=professional_id,
        service_id=service_id,
        start=start,
        end=end,
        now=now,
        config=get_booking_config(),
        redis=redis,
    )
    return SlotsResponse(**result)
