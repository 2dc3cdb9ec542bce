"""Cleaning task derivation from booking lifecycle events.

Cleanings carry no foreign key to bookings: a task belongs to the booking
whose checkout it follows, matched by property and a time window, and the
originating booking id is written into its notes.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.config import Settings
from hostdesk.core.locks import PropertyLockManager
from hostdesk.models.cleaning import Cleaning
from hostdesk.models.enums import CleaningStatus
from hostdesk.models.property import Property
from hostdesk.schemas.cleaning import CleaningStats
from hostdesk.services.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingDeactivated,
    BookingDatesChanged,
    BookingDeleted,
    BookingSnapshot,
    EventDispatcher,
)

logger = logging.getLogger(__name__)

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


def names_other_booking(notes: Optional[str], booking_id: UUID) -> bool:
    """True when the notes reference booking ids, none of which is ``booking_id``."""
    if not notes:
        return False
    referenced = {match.lower() for match in _UUID_PATTERN.findall(notes)}
    return bool(referenced) and str(booking_id).lower() not in referenced


class CleaningService:
    """Derives cleaning tasks from bookings and answers status-view queries."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    def cleaning_date_for(self, check_out: datetime) -> datetime:
        return check_out + timedelta(hours=self.settings.cleaning_offset_hours)

    async def derive_for_booking(self, booking: BookingSnapshot) -> Optional[Cleaning]:
        """Schedule the post-checkout cleaning unless one already covers the slot."""
        cleaning_date = self.cleaning_date_for(booking.check_out)
        window = timedelta(hours=self.settings.cleaning_collision_window_hours)

        result = await self.db.execute(
            select(Cleaning.id)
            .where(
                Cleaning.property_id == booking.property_id,
                Cleaning.status != CleaningStatus.CANCELLED,
                Cleaning.cleaning_date >= cleaning_date - window,
                Cleaning.cleaning_date <= cleaning_date + window,
            )
            .limit(1)
        )
        existing_id = result.scalar_one_or_none()
        if existing_id is not None:
            logger.debug(
                f"[CLEANINGS] Cleaning {existing_id} already covers booking {booking.id}"
            )
            return None

        prop = await self.db.get(Property, booking.property_id)
        cost = self.settings.default_cleaning_cost
        if prop is not None and prop.default_cleaning_cost is not None:
            cost = prop.default_cleaning_cost

        cleaning = Cleaning(
            property_id=booking.property_id,
            cleaning_date=cleaning_date,
            status=CleaningStatus.SCHEDULED,
            cost=cost,
            notes=f"Post-checkout cleaning for booking {booking.id}",
        )
        self.db.add(cleaning)
        await self.db.flush()

        logger.info(
            f"[CLEANINGS] Scheduled cleaning {cleaning.id} on {cleaning_date:%Y-%m-%d %H:%M} "
            f"for booking {booking.id}"
        )
        return cleaning

    async def cancel_for_booking(
        self,
        booking_id: UUID,
        property_id: UUID,
        check_out: datetime,
        reason: str,
    ) -> int:
        """Cancel scheduled cleanings in the booking's post-checkout window.

        Rows are kept with an explanatory note. Cleanings already started,
        completed or attributed to another booking are left alone.
        """
        window_end = check_out + timedelta(hours=self.settings.cleaning_cancel_window_hours)
        result = await self.db.execute(
            select(Cleaning).where(
                Cleaning.property_id == property_id,
                Cleaning.status == CleaningStatus.SCHEDULED,
                Cleaning.cleaning_date >= check_out,
                Cleaning.cleaning_date <= window_end,
            )
        )

        cancelled = 0
        note = f"Cancelled due to booking {booking_id} {reason}"
        for cleaning in result.scalars().all():
            if names_other_booking(cleaning.notes, booking_id):
                continue
            cleaning.status = CleaningStatus.CANCELLED
            cleaning.notes = f"{cleaning.notes}\n{note}" if cleaning.notes else note
            cancelled += 1

        if cancelled:
            await self.db.flush()
            logger.info(f"[CLEANINGS] Cancelled {cancelled} cleaning(s) for booking {booking_id} {reason}")
        return cancelled

    async def list_cleanings(
        self,
        property_id: Optional[UUID] = None,
        status: Optional[CleaningStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Cleaning]:
        query = select(Cleaning)
        if property_id:
            query = query.where(Cleaning.property_id == property_id)
        if status:
            query = query.where(Cleaning.status == status)
        if date_from:
            query = query.where(Cleaning.cleaning_date >= date_from)
        if date_to:
            query = query.where(Cleaning.cleaning_date <= date_to)

        query = query.order_by(Cleaning.cleaning_date).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self, property_id: Optional[UUID] = None) -> CleaningStats:
        query = select(Cleaning.status, Cleaning.cost)
        if property_id:
            query = query.where(Cleaning.property_id == property_id)
        rows = (await self.db.execute(query)).all()

        stats = CleaningStats(total=len(rows))
        for cleaning_status, cost in rows:
            counter = cleaning_status.value
            setattr(stats, counter, getattr(stats, counter) + 1)
            stats.total_cost += cost or 0

        stats.total_cost = round(stats.total_cost, 2)
        stats.average_cost = round(stats.total_cost / len(rows), 2) if rows else 0.0
        return stats


def subscribe_cleaning_handlers(
    dispatcher: EventDispatcher,
    settings: Settings,
    locks: PropertyLockManager,
) -> None:
    """Wire the cleaning deriver to booking lifecycle events."""

    async def on_confirmed(db: AsyncSession, event: BookingConfirmed) -> None:
        await locks.acquire_transaction_lock(db, event.booking.property_id)
        await CleaningService(db, settings).derive_for_booking(event.booking)

    async def on_cancelled(db: AsyncSession, event: BookingCancelled) -> None:
        booking = event.booking
        await locks.acquire_transaction_lock(db, booking.property_id)
        await CleaningService(db, settings).cancel_for_booking(
            booking.id, booking.property_id, booking.check_out, "cancellation"
        )

    async def on_deleted(db: AsyncSession, event: BookingDeleted) -> None:
        booking = event.booking
        await locks.acquire_transaction_lock(db, booking.property_id)
        await CleaningService(db, settings).cancel_for_booking(
            booking.id, booking.property_id, booking.check_out, "deletion"
        )

    async def on_deactivated(db: AsyncSession, event: BookingDeactivated) -> None:
        booking = event.booking
        await locks.acquire_transaction_lock(db, booking.property_id)
        await CleaningService(db, settings).cancel_for_booking(
            booking.id, booking.property_id, booking.check_out, "deactivation"
        )

    async def on_dates_changed(db: AsyncSession, event: BookingDatesChanged) -> None:
        booking = event.booking
        await locks.acquire_transaction_lock(db, booking.property_id)
        service = CleaningService(db, settings)
        if event.previous_check_out == booking.check_out:
            # Only check-in moved; the post-checkout slot is unchanged
            await service.derive_for_booking(booking)
            return
        await service.cancel_for_booking(
            booking.id, booking.property_id, event.previous_check_out, "date change"
        )
        await service.derive_for_booking(booking)

    dispatcher.subscribe(BookingConfirmed, on_confirmed, "cleanings.derive")
    dispatcher.subscribe(BookingCancelled, on_cancelled, "cleanings.cancel")
    dispatcher.subscribe(BookingDeleted, on_deleted, "cleanings.cancel")
    dispatcher.subscribe(BookingDeactivated, on_deactivated, "cleanings.cancel")
    dispatcher.subscribe(BookingDatesChanged, on_dates_changed, "cleanings.reschedule")
