# tovis/schemas/session.py

from typing import Literal, Optional
from pydantic import BaseModel

from .bookings import BookingRead


class SessionRead(BaseModel):
    mode: Literal["IDLE", "UPCOMING", "ACTIVE"]
    booking: Optional[BookingRead] = None

    model_config = {"from_attributes": True}
