"""Payment gateway adapters."""

from .base import (
    BillingPortalResult,
    CheckoutSessionResult,
    ConnectedAccountResult,
    CustomerResult,
    OnboardingLinkResult,
    PaymentGateway,
    PaymentIntentResult,
    PayoutSummary,
    RefundResult,
    TransferResult,
)
from .stripe_gateway import StripeGateway, build_stripe_gateway, verify_webhook_payload

__all__ = [
    "PaymentGateway",
    "PaymentIntentResult",
    "RefundResult",
    "TransferResult",
    "ConnectedAccountResult",
    "CustomerResult",
    "CheckoutSessionResult",
    "BillingPortalResult",
    "OnboardingLinkResult",
    "PayoutSummary",
    "StripeGateway",
    "build_stripe_gateway",
    "verify_webhook_payload",
]
