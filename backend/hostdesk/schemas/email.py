"""Scheduled email schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from hostdesk.schemas.base import BaseSchema, RecordSchema
from hostdesk.models.enums import EmailType, ScheduledEmailStatus


class ScheduledEmailResponse(RecordSchema):
    """Scheduled email as shown in the booking's email status view."""

    booking_id: UUID
    email_type: EmailType
    recipient_email: str
    recipient_name: str
    scheduled_for: datetime
    status: ScheduledEmailStatus
    retry_count: int
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None


class EmailStats(BaseSchema):
    """Counts of scheduled emails per status."""

    total: int = 0
    pending: int = 0
    sending: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0


class ProcessEmailsResponse(BaseSchema):
    """Result of one processor run."""

    processed: int
    sent: int
    failed: int


class SendNowRequest(BaseSchema):
    """Manually send one email type for a booking."""

    booking_id: UUID
    email_type: EmailType


class SendNowResponse(BaseSchema):
    """Outcome of a manual send."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
