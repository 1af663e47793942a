"""Listing-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from ..models.listing import ListingType
from .common import ApiModel, RequestModel


class CancellationPolicy(RequestModel):
    """
    Per-listing cancellation policy.

    Out-of-range values are clamped rather than rejected: hours to at
    least zero, percentages to 0..100.
    """

    free_cancel_hours: int = Field(48, description="Hours before start with a full refund")
    refund_percent_after_deadline: int = Field(0, description="Refund once the free window has passed")
    no_show_refund_percent: int = Field(0, description="Refund for a no-show")

    @field_validator("free_cancel_hours")
    @classmethod
    def clamp_hours(cls, v: int) -> int:
        return max(0, v)

    @field_validator("refund_percent_after_deadline", "no_show_refund_percent")
    @classmethod
    def clamp_percent(cls, v: int) -> int:
        return max(0, min(100, v))


class CreateListingRequest(RequestModel):
    """Request schema for creating a listing."""

    listing_type: ListingType
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)
    price_amount: int = Field(0, ge=0, description="Indicative price in minor units")
    currency: str | None = Field(None, min_length=3, max_length=3)
    cancellation_policy: CancellationPolicy | None = None


class UpdateCancellationPolicyRequest(RequestModel):
    listing_id: str = Field(..., min_length=1, max_length=36)
    cancellation_policy: CancellationPolicy


class ListingView(ApiModel):
    """Listing response schema."""

    id: str
    listing_type: str
    provider_id: str
    title: str
    description: str | None = None
    price_amount: int
    currency: str
    free_cancel_hours: int
    refund_percent_after_deadline: int
    no_show_refund_percent: int
    rating_avg: float
    rating_count: int
    weighted_score: float
    week_key: str | None = None
    week_rating_avg: float
    week_rating_count: int
    week_weighted_score: float
    created_at: datetime
