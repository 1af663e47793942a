"""Account-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from .common import ApiModel, RequestModel


class RegistrableRole(str, Enum):
    """Roles a caller may pick for themselves."""
    BUYER = "buyer"
    GUIDE = "guide"
    HOST = "host"


class RegisterAccountRequest(RequestModel):
    role: RegistrableRole = RegistrableRole.BUYER
    email: str | None = Field(None, max_length=320)
    country: str | None = Field(None, max_length=64)


class AccountView(ApiModel):
    """Account response schema."""

    id: str
    role: str
    email: str | None = None
    country: str | None = None
    seller_tier: str
    subscription_status: str | None = None
    payout_account_id: str | None = None
    rating_avg: float
    rating_count: int
    weighted_score: float
    created_at: datetime


class ConnectPayoutAccountResponse(ApiModel):
    url: str
    payout_account_id: str


class SetAdminRoleRequest(RequestModel):
    target_account_id: str = Field(..., min_length=1, max_length=128)


class SetAdminRoleResponse(ApiModel):
    ok: bool
    account_id: str


class PaidTier(str, Enum):
    PRO = "pro"
    ELITE = "elite"


class SellerRole(str, Enum):
    GUIDE = "guide"
    HOST = "host"


class SubscriptionCheckoutRequest(RequestModel):
    """Seller plan to subscribe to; the currency follows the account's country."""

    tier: PaidTier
    role: SellerRole


class SubscriptionCheckoutResponse(ApiModel):
    url: str
    currency: str
    session_id: str


class BillingPortalResponse(ApiModel):
    url: str
