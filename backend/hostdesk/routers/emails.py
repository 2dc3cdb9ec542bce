"""Emails router: processor trigger, manual actions and statistics."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from hostdesk.core.deps import get_email_service, verify_cron_secret
from hostdesk.core.errors import HostDeskError
from hostdesk.routers.bookings import to_http_error
from hostdesk.schemas.email import (
    EmailStats,
    ProcessEmailsResponse,
    ScheduledEmailResponse,
    SendNowRequest,
    SendNowResponse,
)
from hostdesk.services.email_scheduler import EmailService

router = APIRouter(prefix="/emails", tags=["emails"])


@router.post(
    "/process",
    response_model=ProcessEmailsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def process_emails(service: EmailService = Depends(get_email_service)):
    """Send all due scheduled emails (called by cron or the worker)."""
    return await service.process_pending_emails()


@router.get("/stats", response_model=EmailStats)
async def email_stats(
    booking_id: Optional[UUID] = None,
    service: EmailService = Depends(get_email_service),
):
    return await service.email_stats(booking_id)


@router.post("/send-now", response_model=SendNowResponse)
async def send_now(
    data: SendNowRequest,
    service: EmailService = Depends(get_email_service),
):
    """Send one email type for a booking immediately, outside its schedule."""
    try:
        return await service.send_now(data.booking_id, data.email_type)
    except HostDeskError as e:
        raise to_http_error(e)


@router.post("/{email_id}/retry", response_model=ScheduledEmailResponse)
async def retry_email(
    email_id: UUID,
    service: EmailService = Depends(get_email_service),
):
    """Re-queue a failed email with a fresh retry budget."""
    try:
        email = await service.retry_failed(email_id)
    except HostDeskError as e:
        raise to_http_error(e)

    return ScheduledEmailResponse.model_validate(email)
