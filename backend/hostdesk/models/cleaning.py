"""Cleaning task model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, Text, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostdesk.core.database import Base, enum_column
from hostdesk.models.enums import CleaningStatus

if TYPE_CHECKING:
    from hostdesk.models.property import Property


class Cleaning(Base):
    """A post-checkout cleaning task.

    Derived from a booking's checkout but stored without a foreign key to it:
    the originating booking is matched by property + time window, and named
    in ``notes``. Cleaning staff mutate these rows independently of bookings.
    """

    __tablename__ = "cleanings"

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

    cleaning_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[CleaningStatus] = mapped_column(
        enum_column(CleaningStatus),
        default=CleaningStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    cost: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    property: Mapped["Property"] = relationship("Property")

    __table_args__ = (
        Index("ix_cleanings_property_date", "property_id", "cleaning_date"),
    )
