"""Review-related Pydantic schemas."""

from pydantic import Field

from .common import ApiModel, RequestModel


class AddReviewRequest(RequestModel):
    """Request schema for reviewing a completed booking."""

    booking_id: str = Field(..., min_length=1, max_length=36)
    rating: int = Field(..., description="Stars, 1 to 5")
    comment: str = Field("", description="Free text; stored up to 2000 characters")


class AddReviewResponse(ApiModel):
    review_id: str
