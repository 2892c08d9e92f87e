# tovis/schemas/bookings.py

from typing import Literal, Optional
from pydantic import AwareDatetime, BaseModel, Field

from ._common import OptionalUtcDatetime, UtcDatetime


class BookingCreate(BaseModel):
    professional_id: int
    service_id: int
    scheduled_for: AwareDatetime

    model_config = {"from_attributes": True}


class BookingStatusUpdate(BaseModel):
    status: Literal["ACCEPTED", "COMPLETED", "CANCELLED"]
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingRead(BaseModel):
    id: int

    professional_id: int
    client_id: int
    service_id: int

    scheduled_for: UtcDatetime
    duration_minutes_snapshot: int
    buffer_minutes: int = 0

    status: str
    started_at: OptionalUtcDatetime = None
    finished_at: OptionalUtcDatetime = None
    cancel_reason: Optional[str] = None

    created_at: OptionalUtcDatetime = None
    updated_at: OptionalUtcDatetime = None

    model_config = {"from_attributes": True}
