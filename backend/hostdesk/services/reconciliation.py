"""Periodic re-dispatch of lifecycle events to heal stale derived records.

Handlers are idempotent, so replaying ``BookingConfirmed`` for live
bookings and ``BookingCancelled`` for recent cancellations only repairs
what a failed handler left behind.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.config import Settings
from hostdesk.core.locks import PropertyLockManager
from hostdesk.models.booking import Booking
from hostdesk.models.enums import BookingStatus
from hostdesk.services.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingSnapshot,
    EventDispatcher,
    HandlerOutcome,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    confirmed: int = 0
    cancelled: int = 0
    failures: list[HandlerOutcome] = field(default_factory=list)


class ReconciliationService:
    """Replays lifecycle events for bookings whose derived state may be stale."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        locks: PropertyLockManager,
        dispatcher: EventDispatcher,
        clock: Callable[[], datetime] = datetime.now,
        utc_clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.settings = settings
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock
        self.utc_clock = utc_clock

    async def sweep(self, now: Optional[datetime] = None) -> ReconciliationReport:
        now = now or self.clock()
        # updated_at is stamped in UTC, stay dates in property local time
        lookback = self.utc_clock() - timedelta(days=self.settings.reconcile_lookback_days)

        confirmed = await self._booking_ids(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.check_out > now,
        )
        cancelled = await self._booking_ids(
            Booking.status == BookingStatus.CANCELLED,
            Booking.updated_at >= lookback,
        )
        await self.db.commit()

        report = ReconciliationReport()
        for booking_id in confirmed:
            if await self._replay(booking_id, BookingStatus.CONFIRMED, BookingConfirmed, report):
                report.confirmed += 1
        for booking_id in cancelled:
            if await self._replay(booking_id, BookingStatus.CANCELLED, BookingCancelled, report):
                report.cancelled += 1

        logger.info(
            f"[RECONCILE] Replayed {report.confirmed} confirmed and {report.cancelled} cancelled "
            f"booking(s), {len(report.failures)} handler failure(s)"
        )
        return report

    async def _booking_ids(self, *criteria) -> list[tuple[UUID, UUID]]:
        result = await self.db.execute(
            select(Booking.id, Booking.property_id).where(*criteria).order_by(Booking.check_in)
        )
        return [(row.id, row.property_id) for row in result.all()]

    async def _replay(
        self,
        ids: tuple[UUID, UUID],
        expected_status: BookingStatus,
        event_type: type,
        report: ReconciliationReport,
    ) -> bool:
        booking_id, property_id = ids
        async with self.locks.lock(property_id):
            booking = await self.db.get(Booking, booking_id, populate_existing=True)
            if booking is None or booking.status != expected_status:
                # Changed since the sweep started; its own write dispatched the events
                await self.db.commit()
                return False

            snapshot = BookingSnapshot.from_booking(booking)
            await self.db.commit()
            outcomes = await self.dispatcher.dispatch(self.db, event_type(snapshot))

        report.failures.extend(outcome for outcome in outcomes if not outcome.ok)
        return True
