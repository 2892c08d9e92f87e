# tovis/schemas/_common.py

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator

from ..services.timerange import as_utc


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


# Datetimes read back from the store may be naive (SQLite); always emit UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
OptionalUtcDatetime = Annotated[Optional[datetime], AfterValidator(_utc_or_none)]
