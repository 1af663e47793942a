"""Account model: buyers, sellers and administrators keyed by identity id."""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime, utcnow


class AccountRole(str, Enum):
    """Account role enumeration."""
    BUYER = "buyer"
    GUIDE = "guide"
    HOST = "host"
    ADMIN = "admin"


class SellerTier(str, Enum):
    """Seller subscription tier; each tier fixes the platform commission."""
    FREE = "free"
    PRO = "pro"
    ELITE = "elite"


SELLER_ROLES = (AccountRole.GUIDE, AccountRole.HOST)


class Account(Base):
    """Account entity carrying seller tier, payout account and rating aggregates."""

    __tablename__ = "accounts"

    # Identity provider subject
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default=AccountRole.BUYER.value)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Seller subscription
    seller_tier: Mapped[str] = mapped_column(String(20), nullable=False, default=SellerTier.FREE.value)
    seller_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    subscription_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_period_end: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_checkout_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_checkout_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    # Processor customer that owns the subscription
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)

    # Connected payout account
    payout_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Running rating aggregates
    rating_avg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weighted_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Weekly rating window
    week_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    week_rating_avg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    week_rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    week_weighted_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("rating_count >= 0", name="ck_account_rating_count_non_negative"),
        CheckConstraint("week_rating_count >= 0", name="ck_account_week_rating_count_non_negative"),
    )

    @property
    def is_seller(self) -> bool:
        return self.role in (AccountRole.GUIDE.value, AccountRole.HOST.value)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, role={self.role}, tier={self.seller_tier})>"
