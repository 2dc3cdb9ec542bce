"""Interval overlap checking for a property's calendar."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.errors import ValidationError
from hostdesk.models.booking import Booking
from hostdesk.models.enums import BookingStatus


@dataclass(frozen=True)
class OverlapResult:
    has_overlap: bool
    conflicting_booking: Optional[Booking] = None


def validate_interval(check_in: datetime, check_out: datetime) -> None:
    """Raise ValidationError unless check_in < check_out."""
    if check_in >= check_out:
        raise ValidationError("Check-out date must be after check-in date")


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open [a_start, a_end) and [b_start, b_end) share at least one instant.

    Back-to-back stays (a_end == b_start) do not overlap.
    """
    return a_start < b_end and b_start < a_end


async def has_overlap(
    db: AsyncSession,
    property_id: UUID,
    check_in: datetime,
    check_out: datetime,
    exclude_booking_id: Optional[UUID] = None,
) -> OverlapResult:
    """Check a proposed stay against the property's non-cancelled bookings.

    Read-only. Callers that write afterwards must hold the property lock.
    """
    validate_interval(check_in, check_out)

    query = (
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.status != BookingStatus.CANCELLED,
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        .order_by(Booking.check_in)
        .limit(1)
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query)
    conflicting = result.scalar_one_or_none()

    return OverlapResult(has_overlap=conflicting is not None, conflicting_booking=conflicting)
