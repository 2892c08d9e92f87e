# tovis/schemas/calendar_blocks.py

from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field, field_validator

from ._common import OptionalUtcDatetime, UtcDatetime


class CalendarBlockCreate(BaseModel):
    starts_at: AwareDatetime
    ends_at: AwareDatetime
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("note")
    @classmethod
    def strip_note(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class CalendarBlockRead(BaseModel):
    id: int
    professional_id: int

    starts_at: UtcDatetime
    ends_at: UtcDatetime
    note: Optional[str] = None

    created_at: OptionalUtcDatetime = None

    model_config = {"from_attributes": True}
