# tovis/schemas/holds.py

from pydantic import AwareDatetime, BaseModel

from ._common import UtcDatetime


class HoldCreate(BaseModel):
    professional_id: int
    service_id: int
    scheduled_for: AwareDatetime


class HoldRef(BaseModel):
    hold_id: int


class HoldRead(BaseModel):
    id: int

    professional_id: int
    service_id: int
    client_id: int

    scheduled_for: UtcDatetime
    duration_minutes: int
    buffer_minutes: int
    expires_at: UtcDatetime

    model_config = {"from_attributes": True}
