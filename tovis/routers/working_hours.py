# tovis/routers/working_hours.py

import logging
from fastapi import APIRouter, Depends, HTTPException
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db, run_in_transaction
from ..dependencies import get_actor, get_redis, require_pro
from ..models import Professionals
from ..schemas.working_hours import WorkingHoursRead, WorkingHoursUpdate
from ..services.actor import Actor
from ..services.slots import invalidate_professional_cache
from ..services.working_hours import parse_working_hours

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pro/working-hours", tags=["working_hours"])


def _get_professional(db: Session, professional_id: int) -> Professionals:
    obj = db.get(Professionals, professional_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return obj


@router.get("", response_model=WorkingHoursRead)
def get_working_hours(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    professional_id = require_pro(actor)
    professional = _get_professional(db, professional_id)
    hours = parse_working_hours(professional.working_hours, professional.time_zone)
    return WorkingHoursRead(
        professional_id=professional_id,
        time_zone=hours.time_zone,
        working_hours=hours.to_json(),
        buffer_minutes=professional.buffer_minutes or 0,
        used_default=hours.used_default,
    )


@router.put("", response_model=WorkingHoursRead)
def update_working_hours(
    data: WorkingHoursUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Replace the weekly schedule; time zone and buffer are optional."""
    professional_id = require_pro(actor)

    def work():
        professional = _get_professional(db, professional_id)
        time_zone = data.time_zone or professional.time_zone
        hours = parse_working_hours(data.working_hours, time_zone, strict=True)
        professional.working_hours = hours.dumps()
        professional.time_zone = hours.time_zone
        if data.buffer_minutes is not None:
            professional.buffer_minutes = data.buffer_minutes
        db.flush()
        return hours, professional.buffer_minutes or 0

    hours, buffer_minutes = run_in_transaction(db, work)

    logger.info(f"Working hours updated: professional={professional_id}")
    invalidate_professional_cache(redis, professional_id)

    return WorkingHoursRead(
        professional_id=professional_id,
        time_zone=hours.time_zone,
        working_hours=hours.to_json(),
        buffer_minutes=buffer_minutes,
        used_default=False,
    )
