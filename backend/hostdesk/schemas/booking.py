"""Booking schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from hostdesk.schemas.base import BaseSchema, LocalDateTime, RecordSchema
from hostdesk.models.enums import BookingStatus


class BookingCreate(BaseSchema):
    """Create a new booking.

    Date ordering and overlap are checked by the booking service, so that
    API callers and channel sync get the same errors.
    """

    property_id: UUID
    guest_name: str = Field(..., min_length=1, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    check_in: LocalDateTime
    check_out: LocalDateTime
    booking_platform: str = Field(default="manual", max_length=50)
    total_amount: Optional[float] = Field(None, ge=0)
    status: BookingStatus = BookingStatus.CONFIRMED
    notes: Optional[str] = None


class BookingUpdate(BaseSchema):
    """Partial update of a booking. Only fields that are set are applied."""

    guest_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    check_in: Optional[LocalDateTime] = None
    check_out: Optional[LocalDateTime] = None
    booking_platform: Optional[str] = Field(None, max_length=50)
    total_amount: Optional[float] = Field(None, ge=0)
    status: Optional[BookingStatus] = None
    notes: Optional[str] = None


class BookingResponse(RecordSchema):
    """Booking response."""

    property_id: UUID
    guest_name: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    check_in: datetime
    check_out: datetime
    status: BookingStatus
    booking_platform: str
    total_amount: Optional[float] = None
    notes: Optional[str] = None


class BookingStats(BaseSchema):
    """Aggregate booking figures for the dashboard."""

    total: int = 0
    confirmed: int = 0
    pending: int = 0
    cancelled: int = 0
    checked_in: int = 0
    checked_out: int = 0
    total_revenue: float = 0.0
    average_nights: float = 0.0


class PlatformDeleteResponse(BaseSchema):
    """Result of removing every booking of a channel."""

    platform: str
    deleted: int
