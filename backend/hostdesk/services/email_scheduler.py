"""Scheduled guest emails: scheduling, cancellation and the send processor.

Delivery is at-least-once. A processor run claims each due row with a
compare-and-set (pending -> sending) before dispatching it, so concurrent
runs never pick up the same row; claims left behind by a crashed run are
released once they are older than the claim timeout.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.config import Settings
from hostdesk.core.errors import NotFoundError, TransientDispatchError, ValidationError
from hostdesk.models.booking import Booking
from hostdesk.models.email import EmailLog, ScheduledEmail
from hostdesk.models.enums import (
    AuditAction,
    BookingStatus,
    EmailLogStatus,
    EmailType,
    ScheduledEmailStatus,
)
from hostdesk.models.property import Property
from hostdesk.schemas.email import EmailStats, ProcessEmailsResponse, SendNowResponse
from hostdesk.services.audit import AuditService
from hostdesk.services.email_templates import (
    EMAIL_TAGS,
    EmailContext,
    EmailTemplateRenderer,
    RenderedEmail,
)
from hostdesk.services.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingDeactivated,
    BookingDatesChanged,
    BookingSnapshot,
    EventDispatcher,
)
from hostdesk.services.mail_transport import MailResult, MailTransport

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

CHECK_IN_LEAD = timedelta(days=2)
CHECKOUT_REMINDER_LEAD = timedelta(days=1)
THANK_YOU_DELAY = timedelta(days=2)

# Per-row outcomes of a processor run
SENT = "sent"
RETRY = "retry"
FAILED = "failed"
CANCELLED = "cancelled"


def email_schedule(check_in: datetime, check_out: datetime) -> list[tuple[EmailType, datetime]]:
    """Fire times of the three guest emails for a stay."""
    return [
        (EmailType.CHECK_IN_INSTRUCTIONS, check_in - CHECK_IN_LEAD),
        (EmailType.CHECKOUT_REMINDER, check_out - CHECKOUT_REMINDER_LEAD),
        (EmailType.THANK_YOU_REVIEW, check_out + THANK_YOU_DELAY),
    ]


class EmailService:
    """Schedules guest emails for bookings and delivers the due ones."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        transport: MailTransport,
        clock: Clock = datetime.now,
    ):
        self.db = db
        self.settings = settings
        self.transport = transport
        self.clock = clock

    # Scheduling

    async def schedule_for_booking(self, booking: BookingSnapshot) -> list[ScheduledEmail]:
        """Bring the booking's pending emails in line with its current dates.

        Idempotent: a pending row that already matches is kept. A pending row
        that no longer matches is cancelled and replaced. Types that were
        already sent, failed or are being sent are never re-created.
        """
        if not booking.contact_email:
            logger.debug(f"[EMAILS] Booking {booking.id} has no guest email, nothing scheduled")
            return []

        now = self.clock()
        result = await self.db.execute(
            select(ScheduledEmail).where(
                ScheduledEmail.booking_id == booking.id,
                ScheduledEmail.status != ScheduledEmailStatus.CANCELLED,
            )
        )
        current = {email.email_type: email for email in result.scalars().all()}

        created: list[ScheduledEmail] = []
        for email_type, fire_at in email_schedule(booking.check_in, booking.check_out):
            existing = current.get(email_type)
            keep = fire_at > now or email_type == EmailType.THANK_YOU_REVIEW

            if existing is not None:
                if existing.status != ScheduledEmailStatus.PENDING:
                    continue
                if existing.scheduled_for == fire_at and (
                    existing.recipient_email == booking.contact_email
                    and existing.recipient_name == booking.guest_name
                ):
                    continue
                if not await self._cancel_pending(existing.id, now):
                    # Claimed by a processor run in the meantime
                    continue

            if not keep:
                continue

            email = ScheduledEmail(
                booking_id=booking.id,
                email_type=email_type,
                recipient_email=booking.contact_email,
                recipient_name=booking.guest_name,
                scheduled_for=fire_at,
                status=ScheduledEmailStatus.PENDING,
                retry_count=0,
            )
            self.db.add(email)
            created.append(email)

        if created:
            await self.db.flush()
            logger.info(
                f"[EMAILS] Scheduled {', '.join(e.email_type.value for e in created)} "
                f"for booking {booking.id}"
            )
        return created

    async def cancel_for_booking(self, booking_id: UUID) -> int:
        """Cancel every pending email of a booking. Sent rows are untouched."""
        result = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.booking_id == booking_id,
                ScheduledEmail.status == ScheduledEmailStatus.PENDING,
            )
            .values(status=ScheduledEmailStatus.CANCELLED, updated_at=self.clock())
        )
        if result.rowcount:
            logger.info(f"[EMAILS] Cancelled {result.rowcount} pending email(s) for booking {booking_id}")
        return result.rowcount

    async def _cancel_pending(self, email_id: UUID, now: datetime) -> bool:
        result = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.id == email_id,
                ScheduledEmail.status == ScheduledEmailStatus.PENDING,
            )
            .values(status=ScheduledEmailStatus.CANCELLED, updated_at=now)
        )
        return result.rowcount == 1

    # Processing

    async def process_pending_emails(self) -> ProcessEmailsResponse:
        """Send every due pending email, up to the batch size.

        A failure on one row never aborts the rest of the batch.
        """
        now = self.clock()
        await self.release_stale_claims(now)

        result = await self.db.execute(
            select(ScheduledEmail.id)
            .where(
                ScheduledEmail.status == ScheduledEmailStatus.PENDING,
                ScheduledEmail.scheduled_for <= now,
            )
            .order_by(ScheduledEmail.scheduled_for)
            .limit(self.settings.email_batch_size)
        )
        due_ids = list(result.scalars().all())
        await self.db.commit()

        stats = ProcessEmailsResponse(processed=0, sent=0, failed=0)
        for email_id in due_ids:
            if not await self._claim(email_id):
                logger.debug(f"[EMAILS] Email {email_id} claimed by another run, skipping")
                continue

            stats.processed += 1
            try:
                outcome = await self._deliver(email_id)
            except Exception as e:
                await self.db.rollback()
                logger.error(f"[EMAILS] Unexpected error delivering email {email_id}: {e}", exc_info=True)
                await self._mark_failed(email_id, f"Unexpected error: {e}")
                outcome = FAILED

            if outcome == SENT:
                stats.sent += 1
            elif outcome in (RETRY, FAILED):
                stats.failed += 1

        if stats.processed:
            logger.info(
                f"[EMAILS] Processed {stats.processed} email(s): "
                f"{stats.sent} sent, {stats.failed} failed"
            )
        return stats

    async def release_stale_claims(self, now: Optional[datetime] = None) -> int:
        """Return rows stuck in ``sending`` past the claim timeout to ``pending``."""
        now = now or self.clock()
        cutoff = now - timedelta(minutes=self.settings.email_claim_timeout_minutes)
        result = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.status == ScheduledEmailStatus.SENDING,
                ScheduledEmail.claimed_at < cutoff,
            )
            .values(status=ScheduledEmailStatus.PENDING, claimed_at=None, updated_at=now)
        )
        await self.db.commit()
        if result.rowcount:
            logger.warning(f"[EMAILS] Released {result.rowcount} stale email claim(s)")
        return result.rowcount

    async def _claim(self, email_id: UUID) -> bool:
        now = self.clock()
        result = await self.db.execute(
            update(ScheduledEmail)
            .where(
                ScheduledEmail.id == email_id,
                ScheduledEmail.status == ScheduledEmailStatus.PENDING,
            )
            .values(status=ScheduledEmailStatus.SENDING, claimed_at=now, updated_at=now)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _deliver(self, email_id: UUID) -> str:
        email = await self.db.get(ScheduledEmail, email_id, populate_existing=True)
        if email is None:
            # Deleted together with its booking after the claim
            return CANCELLED
        booking = await self.db.get(Booking, email.booking_id, populate_existing=True)

        if booking is None:
            await self._finish(email, ScheduledEmailStatus.FAILED, error="Booking not found")
            return FAILED
        if booking.status == BookingStatus.CANCELLED:
            await self._finish(email, ScheduledEmailStatus.CANCELLED)
            logger.info(f"[EMAILS] Booking {booking.id} is cancelled, email {email.id} not sent")
            return CANCELLED

        try:
            rendered = await self.render_for_booking(booking, email.email_type)
        except ValidationError as e:
            await self._finish(email, ScheduledEmailStatus.FAILED, error=str(e))
            return FAILED

        try:
            result = await self._dispatch(
                email.recipient_email, email.recipient_name, email.email_type, rendered
            )
        except TransientDispatchError as e:
            return await self._handle_transient_failure(email, rendered.subject, e)

        now = self.clock()
        email.status = ScheduledEmailStatus.SENT
        email.sent_at = now
        email.error_message = None
        email.claimed_at = None
        self._log_attempt(email, rendered.subject, EmailLogStatus.SENT, message_id=result.message_id)
        await self.db.commit()

        logger.info(f"[EMAILS] Sent {email.email_type.value} for booking {booking.id}")
        return SENT

    async def _handle_transient_failure(
        self, email: ScheduledEmail, subject: str, error: TransientDispatchError
    ) -> str:
        email.retry_count += 1
        email.error_message = str(error)
        email.claimed_at = None

        if email.retry_count <= self.settings.email_max_retries:
            email.status = ScheduledEmailStatus.PENDING
            email.scheduled_for = self.clock() + timedelta(hours=self.settings.email_retry_delay_hours)
            outcome = RETRY
            logger.warning(
                f"[EMAILS] Email {email.id} failed (attempt {email.retry_count}), "
                f"retrying at {email.scheduled_for:%Y-%m-%d %H:%M}: {error}"
            )
        else:
            email.status = ScheduledEmailStatus.FAILED
            outcome = FAILED
            logger.error(f"[EMAILS] Email {email.id} failed after {email.retry_count} attempts: {error}")

        self._log_attempt(
            email,
            subject,
            EmailLogStatus.FAILED,
            error_details={"error": str(error), "retry_count": email.retry_count},
        )
        await self.db.commit()
        return outcome

    async def _finish(
        self,
        email: ScheduledEmail,
        status: ScheduledEmailStatus,
        error: Optional[str] = None,
    ) -> None:
        email.status = status
        email.claimed_at = None
        if error:
            email.error_message = error
            logger.error(f"[EMAILS] Email {email.id} failed permanently: {error}")
        await self.db.commit()

    async def _mark_failed(self, email_id: UUID, error: str) -> None:
        await self.db.execute(
            update(ScheduledEmail)
            .where(ScheduledEmail.id == email_id)
            .values(
                status=ScheduledEmailStatus.FAILED,
                error_message=error,
                claimed_at=None,
                updated_at=self.clock(),
            )
        )
        await self.db.commit()

    def _log_attempt(
        self,
        email: ScheduledEmail,
        subject: Optional[str],
        status: EmailLogStatus,
        message_id: Optional[str] = None,
        error_details: Optional[dict] = None,
    ) -> None:
        self.db.add(
            EmailLog(
                scheduled_email_id=email.id,
                booking_id=email.booking_id,
                email_type=email.email_type,
                recipient_email=email.recipient_email,
                subject=subject,
                status=status,
                provider_message_id=message_id,
                error_details=error_details,
                sent_at=self.clock(),
            )
        )

    async def _dispatch(
        self,
        recipient_email: str,
        recipient_name: str,
        email_type: EmailType,
        rendered: RenderedEmail,
    ) -> MailResult:
        timeout = self.settings.mail_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.transport.send(
                    recipient_email=recipient_email,
                    recipient_name=recipient_name,
                    subject=rendered.subject,
                    html_body=rendered.html,
                    text_body=rendered.text,
                    tags=EMAIL_TAGS.get(email_type),
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientDispatchError(f"Mail dispatch timed out after {timeout}s") from e

    async def render_for_booking(self, booking: Booking, email_type: EmailType) -> RenderedEmail:
        prop = await self.db.get(Property, booking.property_id)
        context = EmailContext(
            guest_name=booking.guest_name,
            property_name=prop.name if prop else "Property",
            property_address=prop.address if prop else None,
            check_in=booking.check_in,
            check_out=booking.check_out,
            booking_platform=booking.booking_platform,
        )
        return await EmailTemplateRenderer(self.db).render(email_type, context)

    # Status view

    async def get_booking_emails(self, booking_id: UUID) -> list[ScheduledEmail]:
        result = await self.db.execute(
            select(ScheduledEmail)
            .where(ScheduledEmail.booking_id == booking_id)
            .order_by(ScheduledEmail.scheduled_for)
        )
        return list(result.scalars().all())

    async def email_stats(self, booking_id: Optional[UUID] = None) -> EmailStats:
        query = select(ScheduledEmail.status, func.count()).group_by(ScheduledEmail.status)
        if booking_id:
            query = query.where(ScheduledEmail.booking_id == booking_id)
        rows = (await self.db.execute(query)).all()

        stats = EmailStats()
        for email_status, count in rows:
            setattr(stats, email_status.value, count)
            stats.total += count
        return stats

    async def retry_failed(self, email_id: UUID) -> ScheduledEmail:
        """Put a failed email back in the queue, due now, with a fresh retry budget."""
        email = await self.db.get(ScheduledEmail, email_id)
        if email is None:
            raise NotFoundError("scheduled email", email_id)
        if email.status != ScheduledEmailStatus.FAILED:
            raise ValidationError(f"Only failed emails can be retried (status: {email.status.value})")

        email.status = ScheduledEmailStatus.PENDING
        email.retry_count = 0
        email.error_message = None
        email.scheduled_for = self.clock()
        await AuditService(self.db).log(
            action=AuditAction.EMAIL_RETRY_REQUESTED,
            resource_type="scheduled_email",
            resource_id=email.id,
            details={"booking_id": str(email.booking_id), "email_type": email.email_type.value},
        )
        await self.db.commit()

        logger.info(f"[EMAILS] Email {email.id} queued for manual retry")
        return email

    async def send_now(self, booking_id: UUID, email_type: EmailType) -> SendNowResponse:
        """Send one email type for a booking immediately, outside the schedule."""
        booking = await self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        if not booking.contact_email:
            return SendNowResponse(success=False, error="No guest email provided")

        rendered = await self.render_for_booking(booking, email_type)
        log = EmailLog(
            booking_id=booking.id,
            email_type=email_type,
            recipient_email=booking.contact_email,
            subject=rendered.subject,
            sent_at=self.clock(),
        )
        try:
            result = await self._dispatch(booking.contact_email, booking.guest_name, email_type, rendered)
        except TransientDispatchError as e:
            log.status = EmailLogStatus.FAILED
            log.error_details = {"error": str(e), "manual": True}
            self.db.add(log)
            await self.db.commit()
            logger.warning(f"[EMAILS] Manual {email_type.value} for booking {booking.id} failed: {e}")
            return SendNowResponse(success=False, error=str(e))

        log.status = EmailLogStatus.SENT
        log.provider_message_id = result.message_id
        self.db.add(log)
        await AuditService(self.db).log(
            action=AuditAction.EMAIL_SENT_MANUALLY,
            resource_type="booking",
            resource_id=booking.id,
            details={"email_type": email_type.value, "message_id": result.message_id},
        )
        await self.db.commit()

        logger.info(f"[EMAILS] Manually sent {email_type.value} for booking {booking.id}")
        return SendNowResponse(success=True, message_id=result.message_id)


def subscribe_email_handlers(
    dispatcher: EventDispatcher,
    settings: Settings,
    transport: MailTransport,
    clock: Clock = datetime.now,
) -> None:
    """Wire the email scheduler to booking lifecycle events."""

    async def on_scheduled_change(db: AsyncSession, event) -> None:
        await EmailService(db, settings, transport, clock).schedule_for_booking(event.booking)

    async def on_cancelled(db: AsyncSession, event) -> None:
        await EmailService(db, settings, transport, clock).cancel_for_booking(event.booking.id)

    dispatcher.subscribe(BookingConfirmed, on_scheduled_change, "emails.schedule")
    dispatcher.subscribe(BookingDatesChanged, on_scheduled_change, "emails.reschedule")
    dispatcher.subscribe(BookingCancelled, on_cancelled, "emails.cancel")
    dispatcher.subscribe(BookingDeactivated, on_cancelled, "emails.cancel")
