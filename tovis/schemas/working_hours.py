# tovis/schemas/working_hours.py

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

from ..services.working_hours import is_valid_time_zone


class WorkingHoursUpdate(BaseModel):
    # Any of the accepted shapes; validated strictly by the service layer
    working_hours: dict[str, Any]
    time_zone: Optional[str] = None
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=120)

    @field_validator("time_zone")
    @classmethod
    def check_time_zone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not is_valid_time_zone(v):
            raise ValueError(f"Unknown time zone: {v}")
        return v.strip()


class WorkingHoursRead(BaseModel):
    professional_id: int
    time_zone: str
    working_hours: dict[str, list[list[str]]]
    buffer_minutes: int = 0
    used_default: bool = False
