"""Shared pydantic schema pieces."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict


def _strip_tz(value: datetime) -> datetime:
    # Stays are stored as naive property-local wall-clock times
    return value.replace(tzinfo=None)


LocalDateTime = Annotated[datetime, AfterValidator(_strip_tz)]


class BaseSchema(BaseModel):
    """Reads straight from ORM rows; strips surrounding whitespace from strings."""

    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
    )


class RecordSchema(BaseSchema):
    """A persisted row: its id plus bookkeeping timestamps."""

    id: UUID
    created_at: datetime
    updated_at: datetime
