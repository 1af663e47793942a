"""Booking model: the central payment and fulfillment state machine."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime, utcnow


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_INTENT_CREATED = "payment_intent_created"
    PAYMENT_FAILED = "payment_failed"
    PAID_HOLD = "paid_hold"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    CANCELED_ADMIN = "canceled_admin"


class PayoutStatus(str, Enum):
    """Payout side-channel status."""
    NOT_SCHEDULED = "not_scheduled"
    PENDING = "pending"
    PAID = "paid"


# Statuses in which no charge has been taken yet
PRE_PAYMENT_STATUSES = frozenset({
    BookingStatus.PENDING_PAYMENT.value,
    BookingStatus.PAYMENT_INTENT_CREATED.value,
    BookingStatus.PAYMENT_FAILED.value,
})

# Statuses in which funds are held by the platform
CHARGED_STATUSES = frozenset({
    BookingStatus.PAID_HOLD.value,
    BookingStatus.CONFIRMED.value,
})

CANCELED_STATUSES = frozenset({
    BookingStatus.CANCELED.value,
    BookingStatus.CANCELED_ADMIN.value,
})

# Statuses from which a new payment intent may be requested
PAYABLE_STATUSES = frozenset({
    BookingStatus.PENDING_PAYMENT.value,
    BookingStatus.PAYMENT_FAILED.value,
})


class Booking(Base):
    """A buyer's claim on a slot, carrying payment and payout state."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Parties and inventory
    buyer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    listing_id: Mapped[str] = mapped_column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    slot_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("availability_slots.id"), nullable=False, index=True
    )
    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    people_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Money, in minor currency units
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    commission_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    application_fee_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    seller_net_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Processor references
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    client_secret: Mapped[str | None] = mapped_column(String(512), nullable=True)
    charge_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    seller_payout_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transfer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # State
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingStatus.PENDING_PAYMENT.value, index=True
    )
    payout_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.NOT_SCHEDULED.value, index=True
    )
    payout_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    payout_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cancellation
    refund_percent_applied: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refunded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    canceled_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    admin_override_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    paid_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_booking_amount_positive"),
        CheckConstraint("people_count > 0", name="ck_booking_people_positive"),
        CheckConstraint("end_at > start_at", name="ck_booking_end_after_start"),
        CheckConstraint(
            "seller_net_amount IS NULL OR application_fee_amount IS NULL "
            "OR seller_net_amount + application_fee_amount = amount",
            name="ck_booking_split_sums_to_amount",
        ),
        CheckConstraint(
            "refund_percent_applied IS NULL OR refund_percent_applied BETWEEN 0 AND 100",
            name="ck_booking_refund_percent_range",
        ),
        CheckConstraint(
            "payout_status IN ('not_scheduled', 'pending', 'paid')",
            name="ck_booking_payout_status_valid",
        ),
    )

    @property
    def is_canceled(self) -> bool:
        return self.status in CANCELED_STATUSES

    @property
    def refund_outstanding(self) -> bool:
        """A charged booking was canceled but its refund has not gone through."""
        return (
            self.is_canceled
            and not self.refunded
            and bool(self.charge_id or self.payment_intent_id)
            and (self.refund_amount or 0) > 0
        )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, status={self.status}, payout_status={self.payout_status}, "
            f"amount={self.amount} {self.currency})>"
        )
