"""Domain error taxonomy for the booking lifecycle engine."""

from typing import Any, Optional
from uuid import UUID


class HostDeskError(Exception):
    """Base class for all engine errors."""


class ValidationError(HostDeskError):
    """Malformed input (e.g. check_in >= check_out). Never retried."""


class ConflictError(HostDeskError):
    """A booking interval overlaps an existing non-cancelled booking."""

    def __init__(
        self,
        conflicting_booking_id: UUID,
        conflicting_guest_name: Optional[str],
        message: Optional[str] = None,
    ):
        self.conflicting_booking_id = conflicting_booking_id
        self.conflicting_guest_name = conflicting_guest_name
        super().__init__(
            message
            or f"Booking overlaps with existing reservation: {conflicting_guest_name or 'unknown guest'}"
        )


class NotFoundError(HostDeskError):
    """Referenced booking, cleaning or scheduled email does not exist."""

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type.capitalize()} not found: {resource_id}")


class TransientDispatchError(HostDeskError):
    """Mail transport failure (network, provider outage, timeout). Drives retry."""


class DerivedStateError(HostDeskError):
    """A side effect of a committed booking write failed.

    Logged and audited, never rolled back onto the booking.
    """

    def __init__(self, event_name: str, handler_name: str, cause: BaseException):
        self.event_name = event_name
        self.handler_name = handler_name
        self.cause = cause
        super().__init__(f"{handler_name} failed on {event_name}: {cause}")
