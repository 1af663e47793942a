"""Payment gateway interface and result types."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass
class PaymentIntentResult:
    """
    Result from creating a payment intent.

    Attributes:
        id: Processor payment intent id
        client_secret: Secret the client uses to confirm the payment
        amount: Amount in minor units
        currency: Lower-case ISO 4217 code
        status: Processor status string
    """

    id: str
    client_secret: str
    amount: int
    currency: str
    status: str = "requires_payment_method"
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class RefundResult:
    """Result from a refund against a charge."""

    id: str
    amount: int
    currency: str
    status: str


@dataclass
class TransferResult:
    """Result from a transfer to a connected account."""

    id: str
    amount: int
    currency: str
    destination: str


@dataclass
class ConnectedAccountResult:
    id: str


@dataclass
class OnboardingLinkResult:
    url: str
    expires_at: Optional[int] = None


@dataclass
class PayoutSummary:
    """One payout on a connected account."""

    id: str
    amount: int
    currency: str
    arrival_date: Optional[int]
    status: str


@dataclass
class CustomerResult:
    id: str


@dataclass
class CheckoutSessionResult:
    """A hosted checkout page for a seller subscription."""

    id: str
    url: str


@dataclass
class BillingPortalResult:
    url: str


class PaymentGateway(Protocol):
    """
    Operations the marketplace needs from the payment processor.

    Every mutating call takes an idempotency key so a retried call with
    the same key has no additional effect at the processor.
    """

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult: ...

    async def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str) -> None: ...

    async def create_refund(
        self,
        amount: int,
        idempotency_key: str,
        charge_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> RefundResult: ...

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        source_transaction: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> TransferResult: ...

    async def reverse_transfer(
        self,
        transfer_id: str,
        amount: Optional[int],
        idempotency_key: str,
    ) -> None: ...

    async def create_connected_account(
        self,
        email: Optional[str],
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> ConnectedAccountResult: ...

    async def create_onboarding_link(
        self,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLinkResult: ...

    async def list_payouts(self, account_id: str, limit: int) -> list[PayoutSummary]: ...

    async def create_customer(
        self,
        email: Optional[str],
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> CustomerResult: ...

    async def create_subscription_checkout(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult: ...

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> BillingPortalResult: ...

    def verify_webhook(self, payload: bytes, signature_header: Optional[str]) -> dict[str, Any]: ...
