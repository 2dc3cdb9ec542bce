"""SQLAlchemy models for HostDesk."""

from hostdesk.models.property import Property
from hostdesk.models.booking import Booking
from hostdesk.models.cleaning import Cleaning
from hostdesk.models.email import ScheduledEmail, EmailTemplate, EmailLog
from hostdesk.models.audit import AuditLog

__all__ = [
    "Property",
    "Booking",
    "Cleaning",
    "ScheduledEmail",
    "EmailTemplate",
    "EmailLog",
    "AuditLog",
]
