"""Scheduled email, email template and email log models."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostdesk.core.database import Base, enum_column
from hostdesk.models.enums import EmailLogStatus, EmailType, ScheduledEmailStatus

if TYPE_CHECKING:
    from hostdesk.models.booking import Booking


class ScheduledEmail(Base):
    """A guest email due at ``scheduled_for``.

    At most one non-cancelled row per (booking_id, email_type); re-scheduling
    cancels the superseded row instead of adding a duplicate.
    """

    __tablename__ = "scheduled_emails"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    email_type: Mapped[EmailType] = mapped_column(enum_column(EmailType), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)

    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[ScheduledEmailStatus] = mapped_column(
        enum_column(ScheduledEmailStatus),
        default=ScheduledEmailStatus.PENDING,
        nullable=False,
    )

    # Retry tracking
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking")

    __table_args__ = (
        Index("ix_scheduled_emails_pending_due", "status", "scheduled_for"),
        Index(
            "uq_scheduled_emails_active_type",
            "booking_id",
            "email_type",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )


class EmailTemplate(Base):
    """Host-editable override of a built-in email template."""

    __tablename__ = "email_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    template_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class EmailLog(Base):
    """One row per dispatch attempt, kept after the booking is gone."""

    __tablename__ = "email_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    scheduled_email_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("scheduled_emails.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    email_type: Mapped[EmailType] = mapped_column(enum_column(EmailType), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[EmailLogStatus] = mapped_column(enum_column(EmailLogStatus), nullable=False)

    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )

    sent_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
