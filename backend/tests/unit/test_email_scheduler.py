"""
Unit tests for the scheduled email lifecycle.

Covers scheduling and supersession on booking changes, the send processor
(claims, retries, timeouts) and the manual actions of the status view.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from hostdesk.core.errors import NotFoundError, TransientDispatchError, ValidationError
from hostdesk.models.audit import AuditLog
from hostdesk.models.booking import Booking
from hostdesk.models.email import EmailLog, EmailTemplate, ScheduledEmail
from hostdesk.models.enums import (
    AuditAction,
    BookingStatus,
    EmailLogStatus,
    EmailType,
    ScheduledEmailStatus,
)
from hostdesk.schemas.booking import BookingUpdate
from hostdesk.services.email_scheduler import EmailService, email_schedule
from hostdesk.services.events import BookingSnapshot
from hostdesk.services.mail_transport import MailResult, MailTransport

CHECK_IN = datetime(2025, 6, 6, 15, 0)
CHECK_OUT = datetime(2025, 6, 10, 11, 0)


async def emails_for(session_factory, booking_id=None):
    async with session_factory() as session:
        query = select(ScheduledEmail).order_by(ScheduledEmail.scheduled_for, ScheduledEmail.created_at)
        if booking_id:
            query = query.where(ScheduledEmail.booking_id == booking_id)
        return list((await session.execute(query)).scalars().all())


async def email_logs(session_factory):
    async with session_factory() as session:
        return list((await session.execute(select(EmailLog))).scalars().all())


async def process(engine, session_factory):
    async with session_factory() as session:
        return await engine.emails(session).process_pending_emails()


async def insert_email(session_factory, booking_id, **fields):
    values = dict(
        booking_id=booking_id,
        email_type=EmailType.CHECK_IN_INSTRUCTIONS,
        recipient_email="guest@beachstays.com",
        recipient_name="Guest",
        scheduled_for=datetime(2025, 4, 30, 9, 0),
        status=ScheduledEmailStatus.PENDING,
        retry_count=0,
    )
    values.update(fields)
    async with session_factory() as session:
        email = ScheduledEmail(**values)
        session.add(email)
        await session.commit()
        return email


# Scheduling


@pytest.mark.unit
def test_email_schedule_fire_times():
    schedule = dict(email_schedule(CHECK_IN, CHECK_OUT))

    assert schedule == {
        EmailType.CHECK_IN_INSTRUCTIONS: datetime(2025, 6, 4, 15, 0),
        EmailType.CHECKOUT_REMINDER: datetime(2025, 6, 9, 11, 0),
        EmailType.THANK_YOU_REVIEW: datetime(2025, 6, 12, 11, 0),
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirmed_booking_schedules_three_emails(create_booking, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    emails = await emails_for(session_factory, booking.id)

    assert [(e.email_type, e.scheduled_for) for e in emails] == [
        (EmailType.CHECK_IN_INSTRUCTIONS, datetime(2025, 6, 4, 15, 0)),
        (EmailType.CHECKOUT_REMINDER, datetime(2025, 6, 9, 11, 0)),
        (EmailType.THANK_YOU_REVIEW, datetime(2025, 6, 12, 11, 0)),
    ]
    assert all(e.status == ScheduledEmailStatus.PENDING for e in emails)
    assert all(e.retry_count == 0 for e in emails)
    assert {e.recipient_email for e in emails} == {"alice@beachstays.com"}
    assert {e.recipient_name for e in emails} == {"Alice"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_booking_without_guest_email_schedules_nothing(create_booking, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)

    assert await emails_for(session_factory, booking.id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pending_booking_schedules_nothing(create_booking, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT, status=BookingStatus.PENDING)

    assert await emails_for(session_factory, booking.id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_past_fire_times_are_skipped_except_thank_you(create_booking, session_factory, clock):
    clock.now = datetime(2025, 6, 5, 9, 0)
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    emails = await emails_for(session_factory, booking.id)
    assert [e.email_type for e in emails] == [EmailType.CHECKOUT_REMINDER, EmailType.THANK_YOU_REVIEW]

    clock.now = datetime(2025, 7, 1, 9, 0)
    late = await create_booking(datetime(2025, 6, 20), datetime(2025, 6, 25), guest_name="Bob")

    late_emails = await emails_for(session_factory, late.id)
    assert [e.email_type for e in late_emails] == [EmailType.THANK_YOU_REVIEW]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rescheduling_unchanged_booking_is_idempotent(create_booking, engine, db):
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    created = await engine.emails(db).schedule_for_booking(BookingSnapshot.from_booking(booking))
    await db.commit()

    assert created == []
    rows = (await db.execute(select(ScheduledEmail))).scalars().all()
    assert len(rows) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_date_change_supersedes_pending_emails(create_booking, engine, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    async with session_factory() as session:
        result = await engine.bookings(session).update(
            booking.id,
            BookingUpdate(check_in=datetime(2025, 6, 7, 15, 0), check_out=datetime(2025, 6, 11, 11, 0)),
        )
    assert result.derived_state_ok

    emails = await emails_for(session_factory, booking.id)
    active = {e.email_type: e.scheduled_for for e in emails if e.status == ScheduledEmailStatus.PENDING}
    cancelled = [e for e in emails if e.status == ScheduledEmailStatus.CANCELLED]

    assert active == {
        EmailType.CHECK_IN_INSTRUCTIONS: datetime(2025, 6, 5, 15, 0),
        EmailType.CHECKOUT_REMINDER: datetime(2025, 6, 10, 11, 0),
        EmailType.THANK_YOU_REVIEW: datetime(2025, 6, 13, 11, 0),
    }
    assert len(cancelled) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sent_email_type_is_not_recreated(create_booking, engine, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    async with session_factory() as session:
        await session.execute(
            update(ScheduledEmail)
            .where(ScheduledEmail.email_type == EmailType.CHECK_IN_INSTRUCTIONS)
            .values(status=ScheduledEmailStatus.SENT)
        )
        await session.commit()

    async with session_factory() as session:
        await engine.bookings(session).update(booking.id, BookingUpdate(check_out=datetime(2025, 6, 11, 11, 0)))

    emails = await emails_for(session_factory, booking.id)
    check_in_rows = [e for e in emails if e.email_type == EmailType.CHECK_IN_INSTRUCTIONS]
    assert [e.status for e in check_in_rows] == [ScheduledEmailStatus.SENT]
    reminder = [
        e for e in emails
        if e.email_type == EmailType.CHECKOUT_REMINDER and e.status == ScheduledEmailStatus.PENDING
    ]
    assert [e.scheduled_for for e in reminder] == [datetime(2025, 6, 10, 11, 0)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancellation_leaves_sent_emails(create_booking, engine, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    async with session_factory() as session:
        await session.execute(
            update(ScheduledEmail)
            .where(ScheduledEmail.email_type == EmailType.CHECK_IN_INSTRUCTIONS)
            .values(status=ScheduledEmailStatus.SENT)
        )
        await session.commit()

    async with session_factory() as session:
        await engine.bookings(session).update(booking.id, BookingUpdate(status=BookingStatus.CANCELLED))

    statuses = {e.email_type: e.status for e in await emails_for(session_factory, booking.id)}
    assert statuses == {
        EmailType.CHECK_IN_INSTRUCTIONS: ScheduledEmailStatus.SENT,
        EmailType.CHECKOUT_REMINDER: ScheduledEmailStatus.CANCELLED,
        EmailType.THANK_YOU_REVIEW: ScheduledEmailStatus.CANCELLED,
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_back_to_pending_with_new_dates_then_reconfirmed(create_booking, engine, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    async with session_factory() as session:
        result = await engine.bookings(session).update(
            booking.id,
            BookingUpdate(
                status=BookingStatus.PENDING,
                check_in=datetime(2025, 7, 1, 15, 0),
                check_out=datetime(2025, 7, 5, 11, 0),
            ),
        )
    assert result.derived_state_ok

    emails = await emails_for(session_factory, booking.id)
    assert len(emails) == 3
    assert {e.status for e in emails} == {ScheduledEmailStatus.CANCELLED}

    async with session_factory() as session:
        await engine.bookings(session).update(booking.id, BookingUpdate(status=BookingStatus.CONFIRMED))

    emails = await emails_for(session_factory, booking.id)
    active = {e.email_type: e.scheduled_for for e in emails if e.status == ScheduledEmailStatus.PENDING}
    assert active == {
        EmailType.CHECK_IN_INSTRUCTIONS: datetime(2025, 6, 29, 15, 0),
        EmailType.CHECKOUT_REMINDER: datetime(2025, 7, 4, 11, 0),
        EmailType.THANK_YOU_REVIEW: datetime(2025, 7, 7, 11, 0),
    }
    assert len(emails) == 6


# Processing


@pytest.mark.unit
@pytest.mark.asyncio
async def test_processor_sends_due_email(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 4, 16, 0)

    stats = await process(engine, session_factory)

    assert (stats.processed, stats.sent, stats.failed) == (1, 1, 0)
    assert len(transport.sent) == 1
    sent = transport.sent[0]
    assert sent["to"] == "alice@beachstays.com"
    assert sent["name"] == "Alice"
    assert sent["subject"] == "Check-in Instructions for Beach House - Friday, June 6, 2025"
    assert "3:00 PM" in sent["html"]
    assert sent["tags"] == ["check-in", "automated"]

    emails = await emails_for(session_factory, booking.id)
    check_in_email = emails[0]
    assert check_in_email.status == ScheduledEmailStatus.SENT
    assert check_in_email.sent_at == clock.now
    assert check_in_email.claimed_at is None

    logs = await email_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].status == EmailLogStatus.SENT
    assert logs[0].provider_message_id == "msg-1"
    assert logs[0].scheduled_email_id == check_in_email.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_processor_ignores_emails_not_yet_due(create_booking, engine, session_factory, transport):
    await create_booking(CHECK_IN, CHECK_OUT)

    stats = await process(engine, session_factory)

    assert (stats.processed, stats.sent, stats.failed) == (0, 0, 0)
    assert transport.sent == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_processor_does_not_resend(create_booking, engine, session_factory, transport, clock):
    await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 4, 16, 0)

    await process(engine, session_factory)
    second = await process(engine, session_factory)

    assert second.processed == 0
    assert len(transport.sent) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transient_failure_schedules_retry(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 4, 16, 0)
    transport.fail_with = TransientDispatchError("Mail provider returned 503: unavailable")

    stats = await process(engine, session_factory)

    assert (stats.processed, stats.sent, stats.failed) == (1, 0, 1)
    email = (await emails_for(session_factory, booking.id))[0]
    assert email.email_type == EmailType.CHECK_IN_INSTRUCTIONS
    assert email.status == ScheduledEmailStatus.PENDING
    assert email.retry_count == 1
    assert email.scheduled_for == clock.now + timedelta(hours=24)
    assert "503" in email.error_message

    logs = await email_logs(session_factory)
    assert [log.status for log in logs] == [EmailLogStatus.FAILED]
    assert logs[0].error_details["retry_count"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_fails_after_retry_budget(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 4, 16, 0)
    transport.fail_with = TransientDispatchError("Mail provider unreachable: connection refused")

    for _ in range(4):
        stats = await process(engine, session_factory)
        assert stats.processed == 1
        clock.advance(hours=25)

    email = next(
        e for e in await emails_for(session_factory, booking.id)
        if e.email_type == EmailType.CHECK_IN_INSTRUCTIONS
    )
    assert email.status == ScheduledEmailStatus.FAILED
    assert email.retry_count == 4
    assert len(await email_logs(session_factory)) == 4

    # Terminal: later runs leave it alone
    transport.fail_with = None
    clock.now = datetime(2025, 6, 8, 12, 0)
    stats = await process(engine, session_factory)
    assert stats.processed == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_transport_counts_as_transient_failure(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 4, 16, 0)
    transport.delay = 1

    stats = await process(engine, session_factory)

    assert stats.failed == 1
    email = (await emails_for(session_factory, booking.id))[0]
    assert email.status == ScheduledEmailStatus.PENDING
    assert email.retry_count == 1
    assert "timed out" in email.error_message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_of_cancelled_booking_is_not_sent(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    async with session_factory() as session:
        # Cancelled behind the engine's back: pending rows are still there
        await session.execute(
            update(Booking).where(Booking.id == booking.id).values(status=BookingStatus.CANCELLED)
        )
        await session.commit()
    clock.now = datetime(2025, 6, 4, 16, 0)

    stats = await process(engine, session_factory)

    assert (stats.processed, stats.sent, stats.failed) == (1, 0, 0)
    assert transport.sent == []
    email = (await emails_for(session_factory, booking.id))[0]
    assert email.status == ScheduledEmailStatus.CANCELLED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_without_booking_fails_permanently(engine, session_factory, transport):
    orphan = await insert_email(session_factory, uuid4())

    stats = await process(engine, session_factory)

    assert (stats.processed, stats.sent, stats.failed) == (1, 0, 1)
    assert transport.sent == []
    email = (await emails_for(session_factory))[0]
    assert email.id == orphan.id
    assert email.status == ScheduledEmailStatus.FAILED
    assert email.error_message == "Booking not found"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stale_claims_are_released_and_sent(create_booking, engine, session_factory, transport, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)
    stale = await insert_email(
        session_factory,
        booking.id,
        status=ScheduledEmailStatus.SENDING,
        claimed_at=clock.now - timedelta(minutes=20),
    )
    fresh = await insert_email(
        session_factory,
        booking.id,
        email_type=EmailType.CHECKOUT_REMINDER,
        status=ScheduledEmailStatus.SENDING,
        claimed_at=clock.now - timedelta(minutes=5),
    )

    stats = await process(engine, session_factory)

    assert stats.sent == 1
    statuses = {e.id: e.status for e in await emails_for(session_factory, booking.id)}
    assert statuses[stale.id] == ScheduledEmailStatus.SENT
    assert statuses[fresh.id] == ScheduledEmailStatus.SENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_claim_is_compare_and_set(create_booking, engine, session_factory, db):
    booking = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)
    email = await insert_email(session_factory, booking.id)

    service = engine.emails(db)

    assert await service._claim(email.id) is True
    assert await service._claim(email.id) is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_database_template_overrides_built_in(create_booking, engine, session_factory, transport, clock):
    async with session_factory() as session:
        session.add_all(
            [
                EmailTemplate(
                    template_key=EmailType.CHECK_IN_INSTRUCTIONS.value,
                    name="Custom check-in",
                    subject="Welcome to {{ property_name }}",
                    html_content="<p>Hi {{ guest_name }}, door code {{ door_code }}</p>",
                ),
                EmailTemplate(
                    template_key=EmailType.CHECKOUT_REMINDER.value,
                    name="Disabled reminder",
                    subject="Disabled",
                    html_content="<p>Disabled</p>",
                    is_active=False,
                ),
            ]
        )
        await session.commit()
    await create_booking(CHECK_IN, CHECK_OUT)
    clock.now = datetime(2025, 6, 9, 12, 0)

    await process(engine, session_factory)

    subjects = [sent["subject"] for sent in transport.sent]
    assert subjects == ["Welcome to Beach House", "Checkout Reminder - Beach House Tomorrow"]
    assert transport.sent[0]["html"] == "<p>Hi Alice, door code {{ door_code }}</p>"
    assert transport.sent[0]["text"] is None


# Status view and manual actions


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_stats(create_booking, engine, db):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    other = await create_booking(datetime(2025, 6, 20), datetime(2025, 6, 22), guest_name="Bob")
    await engine.bookings(db).update(other.id, BookingUpdate(status=BookingStatus.CANCELLED))

    service = engine.emails(db)
    overall = await service.email_stats()
    mine = await service.email_stats(booking.id)

    assert (overall.total, overall.pending, overall.cancelled) == (6, 3, 3)
    assert (mine.total, mine.pending, mine.cancelled) == (3, 3, 0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_failed_requeues_email(create_booking, engine, session_factory, db, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)
    failed = await insert_email(
        session_factory,
        booking.id,
        status=ScheduledEmailStatus.FAILED,
        retry_count=4,
        error_message="Mail provider returned 500",
    )

    email = await engine.emails(db).retry_failed(failed.id)

    assert email.status == ScheduledEmailStatus.PENDING
    assert email.retry_count == 0
    assert email.error_message is None
    assert email.scheduled_for == clock.now
    audits = (await db.execute(select(AuditLog))).scalars().all()
    assert AuditAction.EMAIL_RETRY_REQUESTED in [a.action for a in audits]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_rejects_non_failed_and_missing_emails(create_booking, engine, db, session_factory):
    booking = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)
    pending = await insert_email(session_factory, booking.id)
    service = engine.emails(db)

    with pytest.raises(ValidationError):
        await service.retry_failed(pending.id)
    with pytest.raises(NotFoundError):
        await service.retry_failed(uuid4())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_now_bypasses_schedule(create_booking, engine, db, transport):
    booking = await create_booking(CHECK_IN, CHECK_OUT)

    response = await engine.emails(db).send_now(booking.id, EmailType.THANK_YOU_REVIEW)

    assert response.success is True
    assert response.message_id == "msg-1"
    assert transport.sent[0]["subject"] == "Thank you for staying at Beach House!"
    assert "https://google.com/reviews" in transport.sent[0]["html"]
    logs = (await db.execute(select(EmailLog))).scalars().all()
    assert [(log.status, log.scheduled_email_id) for log in logs] == [(EmailLogStatus.SENT, None)]

    # The scheduled copy is still pending
    emails = (await db.execute(select(ScheduledEmail))).scalars().all()
    assert {e.status for e in emails} == {ScheduledEmailStatus.PENDING}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_now_failures(create_booking, engine, db, transport):
    no_email = await create_booking(CHECK_IN, CHECK_OUT, contact_email=None)
    service = engine.emails(db)

    response = await service.send_now(no_email.id, EmailType.CHECK_IN_INSTRUCTIONS)
    assert response.success is False
    assert response.error == "No guest email provided"

    with pytest.raises(NotFoundError):
        await service.send_now(uuid4(), EmailType.CHECK_IN_INSTRUCTIONS)

    booking = await create_booking(datetime(2025, 6, 20), datetime(2025, 6, 22), guest_name="Bob")
    transport.fail_with = TransientDispatchError("Email service not configured")
    response = await service.send_now(booking.id, EmailType.CHECK_IN_INSTRUCTIONS)

    assert response.success is False
    assert response.error == "Email service not configured"
    logs = (await db.execute(select(EmailLog))).scalars().all()
    assert [log.status for log in logs] == [EmailLogStatus.FAILED]
    assert logs[0].error_details == {"error": "Email service not configured", "manual": True}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatch_passes_tags_and_timeout(create_booking, settings, db, clock):
    booking = await create_booking(CHECK_IN, CHECK_OUT)
    transport = AsyncMock(spec=MailTransport)
    transport.send.return_value = MailResult(message_id="re_42")

    response = await EmailService(db, settings, transport, clock).send_now(
        booking.id, EmailType.THANK_YOU_REVIEW
    )

    assert response.message_id == "re_42"
    transport.send.assert_awaited_once()
    kwargs = transport.send.await_args.kwargs
    assert kwargs["recipient_email"] == "alice@beachstays.com"
    assert kwargs["tags"] == ["thank-you", "review-request", "automated"]
    assert kwargs["timeout"] == settings.mail_timeout_seconds
