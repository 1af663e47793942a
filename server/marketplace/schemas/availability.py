"""Availability slot schemas."""

from datetime import datetime

from pydantic import Field

from .common import ApiModel, RequestModel


class CreateSlotRequest(RequestModel):
    listing_id: str = Field(..., min_length=1, max_length=36)
    start_iso: str = Field(..., alias="startISO", description="Start time (ISO 8601)")
    end_iso: str = Field(..., alias="endISO", description="End time (ISO 8601)")


class SlotView(ApiModel):
    """Availability slot response schema."""

    id: str
    listing_id: str
    provider_id: str
    start_at: datetime
    end_at: datetime
    status: str
    booking_id: str | None = None
