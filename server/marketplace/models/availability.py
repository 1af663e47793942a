"""Availability slot model."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime, utcnow


class SlotStatus(str, Enum):
    """Slot status enumeration."""
    OPEN = "open"
    RESERVED = "reserved"
    CLOSED = "closed"


class AvailabilitySlot(Base):
    """One bookable time window of a listing."""

    __tablename__ = "availability_slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    provider_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("accounts.id"), nullable=False, index=True
    )
    listing_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("listings.id"), nullable=False, index=True
    )
    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SlotStatus.OPEN.value, index=True)

    # Set while reserved
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reserved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reserved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_slot_end_after_start"),
        CheckConstraint("status IN ('open', 'reserved', 'closed')", name="ck_slot_status_valid"),
        CheckConstraint(
            "(status = 'reserved') = (booking_id IS NOT NULL)",
            name="ck_slot_reserved_has_booking",
        ),
    )

    @property
    def is_reserved(self) -> bool:
        return self.status == SlotStatus.RESERVED.value

    def __repr__(self) -> str:
        return f"<AvailabilitySlot(id={self.id}, listing_id={self.listing_id}, status={self.status})>"
