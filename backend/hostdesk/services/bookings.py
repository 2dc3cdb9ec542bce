"""Booking state machine.

Every calendar write for a property runs under that property's lock:
overlap check, write and commit happen atomically with respect to other
writers, and the lifecycle events of the write are dispatched before the
lock is released so derived records follow booking writes in order.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.errors import ConflictError, NotFoundError
from hostdesk.core.locks import PropertyLockManager
from hostdesk.models.booking import Booking
from hostdesk.models.email import ScheduledEmail
from hostdesk.models.enums import ACTIVE_BOOKING_STATUSES, BookingStatus
from hostdesk.models.property import Property
from hostdesk.schemas.booking import BookingCreate, BookingStats, BookingUpdate
from hostdesk.services.audit import AuditService
from hostdesk.services.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingDeactivated,
    BookingDatesChanged,
    BookingDeleted,
    BookingEvent,
    BookingSnapshot,
    EventDispatcher,
    HandlerOutcome,
)
from hostdesk.services.overlap import has_overlap, validate_interval

logger = logging.getLogger(__name__)

# Columns that may not be cleared through a patch
_REQUIRED_FIELDS = {"guest_name", "check_in", "check_out", "status", "booking_platform"}


@dataclass
class BookingWriteResult:
    """A committed booking write and what its event handlers did."""

    booking: Booking
    outcomes: list[HandlerOutcome] = field(default_factory=list)

    @property
    def derived_state_ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def events_for_update(before: BookingSnapshot, after: BookingSnapshot) -> list[BookingEvent]:
    """Lifecycle events implied by a committed update, in dispatch order."""
    events: list[BookingEvent] = []
    dates_changed = (before.check_in, before.check_out) != (after.check_in, after.check_out)

    # Derived records hang off the dates the booking held before this write
    if after.status == BookingStatus.CANCELLED and before.status != BookingStatus.CANCELLED:
        events.append(BookingCancelled(replace(before, status=after.status)))
    elif (
        before.status in ACTIVE_BOOKING_STATUSES
        and after.status not in ACTIVE_BOOKING_STATUSES
    ):
        events.append(BookingDeactivated(replace(before, status=after.status)))

    if (
        dates_changed
        and before.status in ACTIVE_BOOKING_STATUSES
        and after.status in ACTIVE_BOOKING_STATUSES
    ):
        events.append(BookingDatesChanged(after, before.check_in, before.check_out))

    if after.status == BookingStatus.CONFIRMED and before.status != BookingStatus.CONFIRMED:
        events.append(BookingConfirmed(after))

    return events


class BookingService:
    """Create, update, delete and query bookings."""

    def __init__(
        self,
        db: AsyncSession,
        locks: PropertyLockManager,
        dispatcher: EventDispatcher,
    ):
        self.db = db
        self.locks = locks
        self.dispatcher = dispatcher

    async def get(self, booking_id: UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        return booking

    async def list_bookings(
        self,
        property_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
        platform: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        """Bookings ordered by check-in. A date range matches stays touching it."""
        query = select(Booking)
        if property_id:
            query = query.where(Booking.property_id == property_id)
        if status:
            query = query.where(Booking.status == status)
        if platform:
            query = query.where(Booking.booking_platform == platform)
        if date_to:
            query = query.where(Booking.check_in <= date_to)
        if date_from:
            query = query.where(Booking.check_out >= date_from)

        query = query.order_by(Booking.check_in).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self, property_id: Optional[UUID] = None) -> BookingStats:
        query = select(Booking.status, Booking.total_amount, Booking.check_in, Booking.check_out)
        if property_id:
            query = query.where(Booking.property_id == property_id)
        rows = (await self.db.execute(query)).all()

        stats = BookingStats(total=len(rows))
        total_nights = 0
        for booking_status, total_amount, check_in, check_out in rows:
            counter = booking_status.value
            setattr(stats, counter, getattr(stats, counter) + 1)
            stats.total_revenue += total_amount or 0
            total_nights += (check_out.date() - check_in.date()).days

        stats.total_revenue = round(stats.total_revenue, 2)
        stats.average_nights = round(total_nights / len(rows), 2) if rows else 0.0
        return stats

    async def create(self, data: BookingCreate) -> BookingWriteResult:
        """Insert a booking after checking it against the property's calendar.

        Raises:
            ValidationError: check_in is not before check_out
            NotFoundError: the property does not exist
            ConflictError: the stay overlaps a non-cancelled booking
        """
        validate_interval(data.check_in, data.check_out)

        async with self.locks.lock(data.property_id):
            try:
                await self.locks.acquire_transaction_lock(self.db, data.property_id)
                if await self.db.get(Property, data.property_id) is None:
                    raise NotFoundError("property", data.property_id)

                if data.status != BookingStatus.CANCELLED:
                    await self._ensure_no_overlap(data.property_id, data.check_in, data.check_out)

                booking = Booking(**data.model_dump())
                self.db.add(booking)
                await self.db.flush()

                await AuditService(self.db).log_booking_created(
                    booking.id,
                    {
                        "property_id": str(booking.property_id),
                        "check_in": booking.check_in.isoformat(),
                        "check_out": booking.check_out.isoformat(),
                        "status": booking.status.value,
                        "platform": booking.booking_platform,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            logger.info(
                f"[BOOKINGS] Created booking {booking.id} for {booking.guest_name} "
                f"({booking.check_in:%Y-%m-%d} to {booking.check_out:%Y-%m-%d})"
            )

            events: list[BookingEvent] = []
            if booking.status == BookingStatus.CONFIRMED:
                events.append(BookingConfirmed(BookingSnapshot.from_booking(booking)))
            outcomes = await self.dispatcher.dispatch_all(self.db, events)
            if outcomes:
                # A failed handler rolls back the session, expiring loaded rows
                await self.db.refresh(booking)

        return BookingWriteResult(booking, outcomes)

    async def update(self, booking_id: UUID, patch: BookingUpdate) -> BookingWriteResult:
        """Apply a partial update.

        The overlap check runs only when the patch moves the stay's dates or
        brings a cancelled booking back; edits of other fields never conflict.
        """
        changes = {
            name: value
            for name, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or name not in _REQUIRED_FIELDS
        }
        booking = await self.get(booking_id)

        async with self.locks.lock(booking.property_id):
            try:
                await self.locks.acquire_transaction_lock(self.db, booking.property_id)
                await self.db.refresh(booking)
                before = BookingSnapshot.from_booking(booking)

                new_check_in = changes.get("check_in", booking.check_in)
                new_check_out = changes.get("check_out", booking.check_out)
                new_status = changes.get("status", booking.status)
                validate_interval(new_check_in, new_check_out)

                dates_changed = (new_check_in, new_check_out) != (before.check_in, before.check_out)
                reactivated = (
                    before.status == BookingStatus.CANCELLED
                    and new_status != BookingStatus.CANCELLED
                )
                if new_status != BookingStatus.CANCELLED and (dates_changed or reactivated):
                    await self._ensure_no_overlap(
                        booking.property_id,
                        new_check_in,
                        new_check_out,
                        exclude_booking_id=booking.id,
                    )

                diff: dict[str, Any] = {}
                for name, value in changes.items():
                    current = getattr(booking, name)
                    if current != value:
                        diff[name] = {"old": _jsonable(current), "new": _jsonable(value)}
                        setattr(booking, name, value)

                if diff:
                    await AuditService(self.db).log_booking_updated(booking.id, diff)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            if diff:
                logger.info(f"[BOOKINGS] Updated booking {booking.id}: {', '.join(diff)}")

            after = BookingSnapshot.from_booking(booking)
            outcomes = await self.dispatcher.dispatch_all(self.db, events_for_update(before, after))
            if outcomes:
                await self.db.refresh(booking)

        return BookingWriteResult(booking, outcomes)

    async def delete(self, booking_id: UUID) -> list[HandlerOutcome]:
        """Delete a booking with its scheduled emails; cleanings are cancelled by event."""
        booking = await self.get(booking_id)

        async with self.locks.lock(booking.property_id):
            try:
                await self.locks.acquire_transaction_lock(self.db, booking.property_id)
                snapshot = BookingSnapshot.from_booking(booking)

                await self.db.execute(
                    delete(ScheduledEmail).where(ScheduledEmail.booking_id == booking.id)
                )
                await self.db.delete(booking)
                await AuditService(self.db).log_booking_deleted(
                    snapshot.id,
                    {
                        "property_id": str(snapshot.property_id),
                        "guest_name": snapshot.guest_name,
                        "check_in": snapshot.check_in.isoformat(),
                        "check_out": snapshot.check_out.isoformat(),
                        "platform": snapshot.booking_platform,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            logger.info(f"[BOOKINGS] Deleted booking {snapshot.id}")
            return await self.dispatcher.dispatch(self.db, BookingDeleted(snapshot))

    async def delete_by_platform(self, platform: str, property_id: Optional[UUID] = None) -> int:
        """Delete every booking of a channel, one by one so each cascade runs."""
        query = select(Booking.id).where(Booking.booking_platform == platform)
        if property_id:
            query = query.where(Booking.property_id == property_id)
        booking_ids = list((await self.db.execute(query)).scalars().all())

        deleted = 0
        for booking_id in booking_ids:
            try:
                await self.delete(booking_id)
            except NotFoundError:
                # Removed by a concurrent writer since the id was read
                logger.info(f"[BOOKINGS] Booking {booking_id} already gone, skipped")
                continue
            deleted += 1

        logger.info(f"[BOOKINGS] Deleted {deleted} {platform} bookings")
        return deleted

    async def _ensure_no_overlap(
        self,
        property_id: UUID,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        result = await has_overlap(self.db, property_id, check_in, check_out, exclude_booking_id)
        if result.has_overlap:
            conflicting = result.conflicting_booking
            logger.info(
                f"[BOOKINGS] Rejected stay {check_in:%Y-%m-%d} to {check_out:%Y-%m-%d} "
                f"on property {property_id}: overlaps booking {conflicting.id}"
            )
            raise ConflictError(conflicting.id, conflicting.guest_name)
