"""Wiring of the booking lifecycle engine.

One ``BookingEngine`` is built per process (in the API lifespan or the
worker) and hands out request-scoped services bound to a session.
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.config import Settings
from hostdesk.core.locks import PropertyLockManager
from hostdesk.services.bookings import BookingService
from hostdesk.services.cleanings import CleaningService, subscribe_cleaning_handlers
from hostdesk.services.email_scheduler import EmailService, subscribe_email_handlers
from hostdesk.services.events import EventDispatcher
from hostdesk.services.mail_transport import MailTransport, ResendTransport
from hostdesk.services.reconciliation import ReconciliationService


class BookingEngine:
    """Holds the process-wide collaborators: settings, locks, dispatcher, transport, clock."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[MailTransport] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.transport = transport or ResendTransport.from_settings(settings)
        self.clock = clock
        self.locks = PropertyLockManager()
        self.dispatcher = EventDispatcher()

        subscribe_cleaning_handlers(self.dispatcher, settings, self.locks)
        subscribe_email_handlers(self.dispatcher, settings, self.transport, clock)

    def bookings(self, db: AsyncSession) -> BookingService:
        return BookingService(db, self.locks, self.dispatcher)

    def cleanings(self, db: AsyncSession) -> CleaningService:
        return CleaningService(db, self.settings)

    def emails(self, db: AsyncSession) -> EmailService:
        return EmailService(db, self.settings, self.transport, self.clock)

    def reconciliation(self, db: AsyncSession) -> ReconciliationService:
        return ReconciliationService(db, self.settings, self.locks, self.dispatcher, self.clock)
