"""Booking lifecycle events and their in-process dispatcher.

Events are dispatched after the booking write has committed. Each handler
runs in its own transaction on the caller's session: a failing handler is
rolled back, logged, audited and reported as a ``HandlerOutcome``, but the
booking write stands and the remaining handlers still run.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.errors import DerivedStateError
from hostdesk.models.booking import Booking
from hostdesk.models.enums import BookingStatus
from hostdesk.services.audit import AuditService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSnapshot:
    """Immutable copy of the booking fields handlers need."""

    id: UUID
    property_id: UUID
    guest_name: str
    contact_email: Optional[str]
    check_in: datetime
    check_out: datetime
    status: BookingStatus
    booking_platform: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingSnapshot":
        return cls(
            id=booking.id,
            property_id=booking.property_id,
            guest_name=booking.guest_name,
            contact_email=booking.contact_email,
            check_in=booking.check_in,
            check_out=booking.check_out,
            status=booking.status,
            booking_platform=booking.booking_platform,
        )


@dataclass(frozen=True)
class BookingConfirmed:
    booking: BookingSnapshot


@dataclass(frozen=True)
class BookingCancelled:
    # Dates are the ones the booking held before cancellation
    booking: BookingSnapshot


@dataclass(frozen=True)
class BookingDeactivated:
    # Left the active set without being cancelled (back to pending).
    # Dates are the ones the booking held before the write.
    booking: BookingSnapshot


@dataclass(frozen=True)
class BookingDatesChanged:
    booking: BookingSnapshot
    previous_check_in: datetime
    previous_check_out: datetime


@dataclass(frozen=True)
class BookingDeleted:
    booking: BookingSnapshot


BookingEvent = Union[
    BookingConfirmed,
    BookingCancelled,
    BookingDeactivated,
    BookingDatesChanged,
    BookingDeleted,
]
EventHandler = Callable[[AsyncSession, BookingEvent], Awaitable[None]]


@dataclass(frozen=True)
class HandlerOutcome:
    event_name: str
    handler_name: str
    error: Optional[DerivedStateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EventDispatcher:
    """Routes lifecycle events to subscribed handlers."""

    def __init__(self):
        self._handlers: dict[type, list[tuple[str, EventHandler]]] = {}

    def subscribe(self, event_type: type, handler: EventHandler, name: Optional[str] = None) -> None:
        handler_name = name or getattr(handler, "__qualname__", repr(handler))
        self._handlers.setdefault(event_type, []).append((handler_name, handler))

    def handlers_for(self, event_type: type) -> list[str]:
        return [name for name, _ in self._handlers.get(event_type, [])]

    async def dispatch(self, db: AsyncSession, event: BookingEvent) -> list[HandlerOutcome]:
        event_name = type(event).__name__
        outcomes: list[HandlerOutcome] = []

        for handler_name, handler in self._handlers.get(type(event), []):
            try:
                await handler(db, event)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                error = DerivedStateError(event_name, handler_name, exc)
                logger.error(
                    f"[EVENTS] {error} (booking {event.booking.id})",
                    exc_info=exc,
                )
                await self._record_failure(db, event, error)
                outcomes.append(HandlerOutcome(event_name, handler_name, error))
            else:
                outcomes.append(HandlerOutcome(event_name, handler_name))

        return outcomes

    async def dispatch_all(self, db: AsyncSession, events: list[BookingEvent]) -> list[HandlerOutcome]:
        outcomes: list[HandlerOutcome] = []
        for event in events:
            outcomes.extend(await self.dispatch(db, event))
        return outcomes

    async def _record_failure(
        self, db: AsyncSession, event: BookingEvent, error: DerivedStateError
    ) -> None:
        try:
            await AuditService(db).log_derived_state_failed(event.booking.id, error)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.error(f"[EVENTS] Could not audit derived-state failure: {exc}")
