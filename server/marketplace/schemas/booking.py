"""Booking-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field

from ..models.listing import ListingType
from .common import ApiModel, RequestModel


class ReserveSlotRequest(RequestModel):
    """Request schema for reserving a slot and creating a booking."""

    listing_type: ListingType = Field(ListingType.TOUR, description="Kind of listing")
    listing_id: str = Field(..., min_length=1, max_length=36, description="Listing being booked")
    provider_id: str = Field(..., min_length=1, max_length=128, description="Provider owning the slot")
    slot_id: str = Field(..., min_length=1, max_length=36, description="Slot to reserve")
    start_iso: str = Field(..., alias="startISO", description="Start time (ISO 8601)")
    end_iso: str = Field(..., alias="endISO", description="End time (ISO 8601)")
    amount: int = Field(..., gt=0, description="Total in minor currency units")
    currency: str | None = Field(None, min_length=3, max_length=3, description="ISO 4217 code")
    people_count: int = Field(1, ge=1, le=100, description="Number of participants")


class ReserveSlotResponse(ApiModel):
    booking_id: str


class CancelBookingResponse(ApiModel):
    """Outcome of a cancellation."""

    canceled: bool
    refunded: bool
    refund_percent: int


class AdminOverrideCancelRequest(RequestModel):
    """Administrator cancellation with an explicit refund percentage."""

    booking_id: str = Field(..., min_length=1, max_length=36)
    refund_percent: int = Field(0, ge=0, le=100, description="Refund percentage to apply")


class ConfirmBookingResponse(ApiModel):
    booking_id: str
    status: str


class BookingView(ApiModel):
    """Booking response schema."""

    id: str
    status: str
    payout_status: str
    buyer_id: str
    provider_id: str
    listing_type: str
    listing_id: str
    slot_id: str
    start_at: datetime
    end_at: datetime
    people_count: int
    amount: int
    currency: str
    commission_percent: int | None = None
    application_fee_amount: int | None = None
    seller_net_amount: int | None = None
    payment_intent_id: str | None = None
    transfer_id: str | None = None
    refund_percent_applied: int | None = None
    refund_amount: int | None = None
    refunded: bool = False
    created_at: datetime
    paid_at: datetime | None = None
    canceled_at: datetime | None = None
    paid_out_at: datetime | None = None
