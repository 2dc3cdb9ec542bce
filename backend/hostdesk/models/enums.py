"""Enumeration types for the HostDesk domain model."""

from enum import Enum


class BookingStatus(str, Enum):
    """Status of a booking."""
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"


# Bookings in these states own derived records (cleaning task, guest emails)
ACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT}
)


class BookingPlatform(str, Enum):
    """Known distribution channels. The column itself stays free-form."""
    MANUAL = "manual"
    AIRBNB = "airbnb"
    VRBO = "vrbo"
    BOOKING = "booking"


class CleaningStatus(str, Enum):
    """Status of a cleaning task."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EmailType(str, Enum):
    """Automated guest email types."""
    CHECK_IN_INSTRUCTIONS = "check_in_instructions"
    CHECKOUT_REMINDER = "checkout_reminder"
    THANK_YOU_REVIEW = "thank_you_review"


class ScheduledEmailStatus(str, Enum):
    """Status of a scheduled email."""
    PENDING = "pending"
    SENDING = "sending"  # Claimed by a processor run, dispatch in flight
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EmailLogStatus(str, Enum):
    """Outcome of one dispatch attempt."""
    SENT = "sent"
    FAILED = "failed"


class AuditAction(str, Enum):
    """Actions tracked in audit log."""
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_DELETED = "booking_deleted"
    DERIVED_STATE_FAILED = "derived_state_failed"
    EMAIL_RETRY_REQUESTED = "email_retry_requested"
    EMAIL_SENT_MANUALLY = "email_sent_manually"
