"""Property model (read-only collaborator of the booking engine)."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String, DateTime, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostdesk.core.database import Base

if TYPE_CHECKING:
    from hostdesk.models.booking import Booking


class Property(Base):
    """A rental property owned by the host.

    Property CRUD lives outside the engine; only name, address and the
    default cleaning cost are read here.
    """

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Used when a cleaning task is derived from a checkout
    default_cleaning_cost: Mapped[Optional[float]] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    bookings: Mapped[List["Booking"]] = relationship("Booking", back_populates="property")
