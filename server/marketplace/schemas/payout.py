"""Payout-related Pydantic schemas."""

from pydantic import Field

from .common import ApiModel, RequestModel


class RequestPayoutResponse(ApiModel):
    transfer_id: str
    already_done: bool


class ListPayoutsRequest(RequestModel):
    limit: int = Field(30, ge=1, le=100, description="Maximum payouts to return")


class PayoutItem(ApiModel):
    """One payout on the seller's connected account."""

    id: str
    amount: int
    currency: str
    arrival_date: int | None = None
    status: str


class ListPayoutsResponse(ApiModel):
    payouts: list[PayoutItem]
