"""Review model; the primary key is the reviewed booking's id."""

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime, utcnow


class Review(Base):
    """Buyer review of a completed booking."""

    __tablename__ = "reviews"

    # One review per booking by construction
    id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id"), primary_key=True)
    buyer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    listing_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, listing_id={self.listing_id}, rating={self.rating})>"
