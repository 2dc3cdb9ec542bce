"""Booking model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, Index, CheckConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostdesk.core.database import Base, enum_column
from hostdesk.models.enums import BookingStatus

if TYPE_CHECKING:
    from hostdesk.models.property import Property


class Booking(Base):
    """A guest reservation on a property, entered manually or synced from a channel.

    Non-cancelled bookings of one property never overlap under half-open
    [check_in, check_out) semantics. Timestamps are naive, property-local.
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Guest
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Stay
    check_in: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        enum_column(BookingStatus),
        default=BookingStatus.CONFIRMED,
        nullable=False,
        index=True,
    )

    booking_platform: Mapped[str] = mapped_column(String(50), default="manual")  # manual, airbnb, vrbo, booking
    total_amount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_bookings_check_in_before_check_out"),
        Index("ix_bookings_property_dates", "property_id", "check_in", "check_out"),
    )
