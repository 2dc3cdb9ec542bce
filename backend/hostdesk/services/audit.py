"""Audit logging service."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.errors import DerivedStateError
from hostdesk.models.audit import AuditLog
from hostdesk.models.enums import AuditAction


class AuditService:
    """Service for creating audit log entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Create an audit log entry."""
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_booking_created(self, booking_id: UUID, details: dict[str, Any]) -> AuditLog:
        """Log booking created."""
        return await self.log(
            action=AuditAction.BOOKING_CREATED,
            resource_type="booking",
            resource_id=booking_id,
            details=details,
        )

    async def log_booking_updated(self, booking_id: UUID, changes: dict[str, Any]) -> AuditLog:
        """Log booking updated, with old/new values of changed fields."""
        return await self.log(
            action=AuditAction.BOOKING_UPDATED,
            resource_type="booking",
            resource_id=booking_id,
            details={"changes": changes},
        )

    async def log_booking_deleted(self, booking_id: UUID, details: dict[str, Any]) -> AuditLog:
        """Log booking deleted."""
        return await self.log(
            action=AuditAction.BOOKING_DELETED,
            resource_type="booking",
            resource_id=booking_id,
            details=details,
        )

    async def log_derived_state_failed(self, booking_id: UUID, error: DerivedStateError) -> AuditLog:
        """Log a failed side effect of a committed booking write."""
        return await self.log(
            action=AuditAction.DERIVED_STATE_FAILED,
            resource_type="booking",
            resource_id=booking_id,
            details={
                "event": error.event_name,
                "handler": error.handler_name,
                "error": str(error.cause),
                "error_type": type(error.cause).__name__,
            },
        )
