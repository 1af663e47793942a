"""Listing model with its per-listing cancellation policy."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime, utcnow


class ListingType(str, Enum):
    """Kind of listing a provider offers."""
    TOUR = "tour"
    EXPERIENCE = "experience"


class Listing(Base):
    """A bookable tour or experience offered by one provider."""

    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("accounts.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Cancellation policy
    free_cancel_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=48)
    refund_percent_after_deadline: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    no_show_refund_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Rating aggregates
    rating_avg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weighted_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    week_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    week_rating_avg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    week_rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    week_weighted_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("listing_type IN ('tour', 'experience')", name="ck_listing_type_valid"),
        CheckConstraint("price_amount >= 0", name="ck_listing_price_non_negative"),
        CheckConstraint("free_cancel_hours >= 0", name="ck_listing_free_cancel_hours_non_negative"),
        CheckConstraint(
            "refund_percent_after_deadline BETWEEN 0 AND 100",
            name="ck_listing_refund_percent_range",
        ),
        CheckConstraint(
            "no_show_refund_percent BETWEEN 0 AND 100",
            name="ck_listing_no_show_percent_range",
        ),
        CheckConstraint("rating_count >= 0", name="ck_listing_rating_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, type={self.listing_type}, provider_id={self.provider_id})>"
