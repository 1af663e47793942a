"""
Stripe implementation of the payment gateway.

All Stripe calls go through this adapter so error translation, timing
logs and idempotency keys are handled in one place. The SDK is
synchronous; calls run in the threadpool so they never block the event
loop. Each call passes the API key explicitly instead of relying on the
module-level ``stripe.api_key``.
"""

import json
import logging
import time
from typing import Any, Callable, Optional, TypeVar

import stripe
from fastapi.concurrency import run_in_threadpool

from ..core.config import settings
from ..core.exceptions import PaymentGatewayError, ValidationError
from .base import (
    BillingPortalResult,
    CheckoutSessionResult,
    ConnectedAccountResult,
    CustomerResult,
    OnboardingLinkResult,
    PaymentIntentResult,
    PayoutSummary,
    RefundResult,
    TransferResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def verify_webhook_payload(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int,
) -> dict[str, Any]:
    """
    Verify a Stripe-Signature header and decode the event body.

    Args:
        payload: Raw request body, exactly as received
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret
        tolerance: Maximum signature age in seconds

    Returns:
        dict: Decoded event

    Raises:
        ValidationError: Missing secret or header, bad signature, or a body
            that is not a JSON object
    """
    if not secret:
        logger.error("Webhook received but no signing secret is configured")
        raise ValidationError(detail="Webhook signing secret is not configured")
    if not signature_header:
        raise ValidationError(detail="Missing Stripe-Signature header")

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(detail="Webhook payload is not valid UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(text, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed", extra={"error": str(e)})
        raise ValidationError(detail="Invalid webhook signature") from e

    try:
        event = json.loads(text)
    except ValueError as e:
        raise ValidationError(detail="Webhook payload is not valid JSON") from e
    if not isinstance(event, dict):
        raise ValidationError(detail="Webhook payload must be a JSON object")
    return event


class StripeGateway:
    """Payment gateway backed by the Stripe API."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout_seconds: int = 10,
        webhook_tolerance: int = 300,
        connect_country: str = "RO",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.webhook_tolerance = webhook_tolerance
        self.connect_country = connect_country
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        stripe.max_network_retries = 2

    async def _call(self, operation: str, fn: Callable[[], T], **log_context: Any) -> T:
        """Run one SDK call in the threadpool with timing and error translation."""
        context = {"operation": operation, **log_context}
        start_time = time.time()
        logger.info("Starting Stripe operation", extra=context)
        try:
            result = await run_in_threadpool(fn)
        except stripe.StripeError as e:
            duration_ms = round((time.time() - start_time) * 1000, 2)
            self._handle_stripe_error(e, {**context, "duration_ms": duration_ms})
            raise
        duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info("Stripe operation completed", extra={**context, "duration_ms": duration_ms})
        return result

    @staticmethod
    def _handle_stripe_error(error: stripe.StripeError, log_context: dict[str, Any]) -> None:
        """
        Translate Stripe SDK exceptions to PaymentGatewayError.

        Rate limits, connection problems and 5xx API errors are marked
        retryable; card, request and authentication errors are not.
        """
        code = getattr(error, "code", None)
        message = getattr(error, "user_message", None) or str(error)

        if isinstance(error, stripe.CardError):
            logger.warning("Card error from Stripe", extra={**log_context, "stripe_code": code})
            raise PaymentGatewayError(detail=message, processor_code=code or "card_declined") from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error("Invalid request to Stripe", extra={**log_context, "stripe_code": code})
            raise PaymentGatewayError(detail=message, processor_code=code or "invalid_request") from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise PaymentGatewayError(
                detail="Payment processor rate limit exceeded", processor_code="rate_limit", retryable=True
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise PaymentGatewayError(
                detail="Payment processor is unreachable", processor_code="api_connection", retryable=True
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed", extra=log_context)
            raise PaymentGatewayError(
                detail="Payment processor rejected the platform credentials", processor_code="authentication"
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra={**log_context, "stripe_code": code})
            raise PaymentGatewayError(detail=message, processor_code=code or "api_error", retryable=True) from error

        logger.error("Unexpected Stripe error", extra={**log_context, "error": str(error)}, exc_info=True)
        raise PaymentGatewayError(detail=message, processor_code=code) from error

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult:
        # No transfer_data: funds stay on the platform until payout
        intent = await self._call(
            "create_payment_intent",
            lambda: stripe.PaymentIntent.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            ),
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        return PaymentIntentResult(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
            metadata=dict(intent.metadata or {}),
        )

    async def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str) -> None:
        await self._call(
            "cancel_payment_intent",
            lambda: stripe.PaymentIntent.cancel(
                payment_intent_id,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            ),
            payment_intent_id=payment_intent_id,
        )

    async def create_refund(
        self,
        amount: int,
        idempotency_key: str,
        charge_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> RefundResult:
        params: dict[str, Any] = {
            "amount": amount,
            "reason": "requested_by_customer",
            "metadata": metadata or {},
        }
        if charge_id:
            params["charge"] = charge_id
        elif payment_intent_id:
            params["payment_intent"] = payment_intent_id
        else:
            raise ValueError("A charge or payment intent is required for a refund")

        refund = await self._call(
            "create_refund",
            lambda: stripe.Refund.create(api_key=self.api_key, idempotency_key=idempotency_key, **params),
            amount=amount,
            charge_id=charge_id,
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
        )
        return RefundResult(id=refund.id, amount=refund.amount, currency=refund.currency, status=refund.status)

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        source_transaction: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> TransferResult:
        transfer = await self._call(
            "create_transfer",
            lambda: stripe.Transfer.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                amount=amount,
                currency=currency,
                destination=destination,
                source_transaction=source_transaction,
                metadata=metadata,
            ),
            amount=amount,
            destination=destination,
            idempotency_key=idempotency_key,
        )
        return TransferResult(
            id=transfer.id,
            amount=transfer.amount,
            currency=transfer.currency,
            destination=transfer.destination,
        )

    async def reverse_transfer(
        self,
        transfer_id: str,
        amount: Optional[int],
        idempotency_key: str,
    ) -> None:
        params: dict[str, Any] = {}
        if amount:
            params["amount"] = amount
        await self._call(
            "reverse_transfer",
            lambda: stripe.Transfer.create_reversal(
                transfer_id,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                **params,
            ),
            transfer_id=transfer_id,
            amount=amount,
        )

    async def create_connected_account(
        self,
        email: Optional[str],
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> ConnectedAccountResult:
        params: dict[str, Any] = {
            "type": "express",
            "country": self.connect_country,
            "metadata": metadata,
        }
        if email:
            params["email"] = email
        account = await self._call(
            "create_connected_account",
            lambda: stripe.Account.create(api_key=self.api_key, idempotency_key=idempotency_key, **params),
            idempotency_key=idempotency_key,
        )
        return ConnectedAccountResult(id=account.id)

    async def create_onboarding_link(
        self,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLinkResult:
        link = await self._call(
            "create_onboarding_link",
            lambda: stripe.AccountLink.create(
                api_key=self.api_key,
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            ),
            account_id=account_id,
        )
        return OnboardingLinkResult(url=link.url, expires_at=getattr(link, "expires_at", None))

    async def list_payouts(self, account_id: str, limit: int) -> list[PayoutSummary]:
        payouts = await self._call(
            "list_payouts",
            lambda: stripe.Payout.list(api_key=self.api_key, stripe_account=account_id, limit=limit),
            account_id=account_id,
            limit=limit,
        )
        return [
            PayoutSummary(
                id=p.id,
                amount=p.amount,
                currency=p.currency,
                arrival_date=getattr(p, "arrival_date", None),
                status=p.status,
            )
            for p in payouts.data
        ]

    async def create_customer(
        self,
        email: Optional[str],
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> CustomerResult:
        params: dict[str, Any] = {"metadata": metadata}
        if email:
            params["email"] = email
        customer = await self._call(
            "create_customer",
            lambda: stripe.Customer.create(api_key=self.api_key, idempotency_key=idempotency_key, **params),
            idempotency_key=idempotency_key,
        )
        return CustomerResult(id=customer.id)

    async def create_subscription_checkout(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult:
        # Metadata goes on both the session and the subscription so every
        # subscription event can be traced back to the account
        session = await self._call(
            "create_subscription_checkout",
            lambda: stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="subscription",
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                billing_address_collection="required",
                automatic_tax={"enabled": True},
                customer_update={"address": "auto", "name": "auto"},
                metadata=metadata,
                subscription_data={"metadata": metadata},
            ),
            customer_id=customer_id,
            price_id=price_id,
        )
        return CheckoutSessionResult(id=session.id, url=session.url)

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> BillingPortalResult:
        session = await self._call(
            "create_billing_portal_session",
            lambda: stripe.billing_portal.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                return_url=return_url,
            ),
            customer_id=customer_id,
        )
        return BillingPortalResult(url=session.url)

    def verify_webhook(self, payload: bytes, signature_header: Optional[str]) -> dict[str, Any]:
        return verify_webhook_payload(payload, signature_header, self.webhook_secret, self.webhook_tolerance)


def build_stripe_gateway() -> StripeGateway:
    """Create the gateway from application settings."""
    return StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        timeout_seconds=settings.stripe_api_timeout_seconds,
        webhook_tolerance=settings.webhook_tolerance_seconds,
        connect_country=settings.stripe_connect_country,
    )
