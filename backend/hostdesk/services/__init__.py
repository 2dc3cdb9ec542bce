"""Services for the HostDesk booking lifecycle engine."""

from hostdesk.services.audit import AuditService
from hostdesk.services.bookings import BookingService, BookingWriteResult
from hostdesk.services.cleanings import CleaningService
from hostdesk.services.email_scheduler import EmailService
from hostdesk.services.engine import BookingEngine
from hostdesk.services.events import EventDispatcher, HandlerOutcome
from hostdesk.services.mail_transport import MailResult, MailTransport, ResendTransport
from hostdesk.services.reconciliation import ReconciliationService

__all__ = [
    "AuditService",
    "BookingService",
    "BookingWriteResult",
    "CleaningService",
    "EmailService",
    "BookingEngine",
    "EventDispatcher",
    "HandlerOutcome",
    "MailResult",
    "MailTransport",
    "ResendTransport",
    "ReconciliationService",
]
