"""Cleaning task schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from hostdesk.schemas.base import BaseSchema, RecordSchema
from hostdesk.models.enums import CleaningStatus


class CleaningResponse(RecordSchema):
    """Cleaning task response."""

    property_id: UUID
    cleaning_date: datetime
    status: CleaningStatus
    cost: Optional[float] = None
    notes: Optional[str] = None


class CleaningStats(BaseSchema):
    """Cleaning counts and cost totals."""

    total: int = 0
    scheduled: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    total_cost: float = 0.0
    average_cost: float = 0.0
