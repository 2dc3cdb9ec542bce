"""Bookings router: calendar writes and booking queries."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hostdesk.core.deps import get_booking_service, get_email_service
from hostdesk.core.errors import ConflictError, HostDeskError, NotFoundError, ValidationError
from hostdesk.models.enums import BookingStatus
from hostdesk.schemas.booking import (
    BookingCreate,
    BookingResponse,
    BookingStats,
    BookingUpdate,
    PlatformDeleteResponse,
)
from hostdesk.schemas.email import ScheduledEmailResponse
from hostdesk.services.bookings import BookingService
from hostdesk.services.email_scheduler import EmailService

router = APIRouter(prefix="/bookings", tags=["bookings"])


def to_http_error(error: HostDeskError) -> HTTPException:
    """Map a domain error onto its HTTP status."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking.

    Rejected with 409 when the stay overlaps a non-cancelled booking of the
    same property. Confirmed bookings get their cleaning and guest emails.
    """
    try:
        result = await service.create(data)
    except HostDeskError as e:
        raise to_http_error(e)

    return BookingResponse.model_validate(result.booking)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    property_id: Optional[UUID] = None,
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    platform: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings ordered by check-in; a date range matches stays touching it."""
    bookings = await service.list_bookings(
        property_id=property_id,
        status=status_filter,
        platform=platform,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/stats", response_model=BookingStats)
async def booking_stats(
    property_id: Optional[UUID] = None,
    service: BookingService = Depends(get_booking_service),
):
    """Counts per status, revenue and average stay length."""
    return await service.stats(property_id)


@router.delete("/platform/{platform}", response_model=PlatformDeleteResponse)
async def delete_platform_bookings(
    platform: str,
    property_id: Optional[UUID] = None,
    service: BookingService = Depends(get_booking_service),
):
    """Remove every booking imported from a channel (before a full re-sync)."""
    try:
        deleted = await service.delete_by_platform(platform, property_id)
    except HostDeskError as e:
        raise to_http_error(e)
    return PlatformDeleteResponse(platform=platform, deleted=deleted)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await service.get(booking_id)
    except HostDeskError as e:
        raise to_http_error(e)

    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: UUID,
    data: BookingUpdate,
    service: BookingService = Depends(get_booking_service),
):
    """Partially update a booking.

    Date changes and reactivation of a cancelled booking are checked for
    overlaps; other edits are applied as is.
    """
    try:
        result = await service.update(booking_id, data)
    except HostDeskError as e:
        raise to_http_error(e)

    return BookingResponse.model_validate(result.booking)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Delete a booking and its scheduled emails; its cleaning is cancelled."""
    try:
        await service.delete(booking_id)
    except HostDeskError as e:
        raise to_http_error(e)


@router.get("/{booking_id}/emails", response_model=List[ScheduledEmailResponse])
async def get_booking_emails(
    booking_id: UUID,
    service: EmailService = Depends(get_email_service),
):
    """Scheduled emails of a booking, in firing order."""
    emails = await service.get_booking_emails(booking_id)
    return [ScheduledEmailResponse.model_validate(e) for e in emails]
