# tovis/schemas/slots.py
"""
Pydantic schemas for availability API.
"""

from datetime import datetime
from pydantic import BaseModel, Field


class SlotsResponse(BaseModel):
    """Bookable slot starts for a service within a window."""
    professional_id: int
    service_id: int
    time_zone: str
    start: datetime
    end: datetime

    duration_minutes: int
    step_minutes: int = Field(description="Grid step in minutes")
    slots: list[datetime]

    model_config = {"from_attributes": True}
