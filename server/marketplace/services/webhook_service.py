"""
Payment processor event ingestion.

Events are verified, deduplicated by event id and dispatched to the
handler registered for their type. The handler's writes and the
processed-event record commit in one transaction, so a redelivered
event is either fully applied once or not at all.

Handlers are registered with the decorator::

    @register_handler("payment_intent.succeeded")
    async def handle_payment_succeeded(txn, event, now) -> bool:
        ...
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from ..core.exceptions import InternalServerError, ValidationError
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..gateways.base import PaymentGateway
from ..models.account import Account, AccountRole, SellerTier
from ..models.booking import (
    CHARGED_STATUSES,
    PRE_PAYMENT_STATUSES,
    Booking,
    BookingStatus,
)
from ..models.webhook_event import ProcessedWebhookEvent
from ..schemas.webhook import (
    CheckoutSessionObject,
    PaymentIntentObject,
    StripeEvent,
    SubscriptionObject,
    WebhookAck,
)
from .cancellation_service import CancellationService
from .pricing import split_amount

logger = logging.getLogger(__name__)

EventHandler = Callable[[Transaction, StripeEvent, datetime], Awaitable[bool]]

WEBHOOK_HANDLERS: dict[str, EventHandler] = {}


def register_handler(event_type: str) -> Callable[[EventHandler], EventHandler]:
    """Register ``func`` as the handler for ``event_type``."""

    def decorator(func: EventHandler) -> EventHandler:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def _parse_object(model, event: StripeEvent):
    try:
        return model.model_validate(event.data.object)
    except PydanticValidationError as e:
        raise ValidationError(
            detail=f"Malformed {event.type} payload",
            violations=[
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e


@register_handler("payment_intent.succeeded")
async def handle_payment_succeeded(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    """
    Record a captured payment.

    A booking in a pre-payment status moves to paid_hold with the charge
    and commission snapshot. Replays against a charged booking only fill
    in missing references; a confirmed booking is never moved back.
    A payment landing on an already canceled booking is recorded as a
    full refund owed; the service issues it once this transaction has
    committed, and the refund sweep retries it if the processor fails.
    """
    intent = _parse_object(PaymentIntentObject, event)
    booking_id = intent.metadata.booking_id
    if not booking_id:
        logger.warning("Payment intent carries no booking id", extra={"payment_intent_id": intent.id})
        return False

    booking = await txn.get_for_update(Booking, booking_id)
    if booking is None:
        logger.warning(
            "Payment succeeded for unknown booking",
            extra={"booking_id": booking_id, "payment_intent_id": intent.id},
        )
        return False
    if booking.payment_intent_id and booking.payment_intent_id != intent.id:
        logger.warning(
            "Payment intent does not match the booking",
            extra={
                "booking_id": booking.id,
                "stored_payment_intent_id": booking.payment_intent_id,
                "payment_intent_id": intent.id,
            },
        )
        return False

    booking.payment_intent_id = booking.payment_intent_id or intent.id
    booking.charge_id = booking.charge_id or intent.charge_id

    if booking.is_canceled:
        if booking.refund_amount:
            return False
        booking.paid_at = booking.paid_at or now
        booking.refund_percent_applied = 100
        booking.refund_amount = booking.amount
        booking.refunded = False
        logger.warning(
            "Payment succeeded for a canceled booking; full refund owed",
            extra={"booking_id": booking.id, "payment_intent_id": intent.id},
        )
        return True

    if booking.status in CHARGED_STATUSES:
        booking.seller_payout_account_id = (
            booking.seller_payout_account_id or intent.metadata.seller_payout_account_id
        )
        logger.info(
            "Replayed payment success for charged booking",
            extra={"booking_id": booking.id, "status": booking.status},
        )
        return True

    metadata = intent.metadata
    if metadata.commission_percent is not None and 0 <= metadata.commission_percent <= 100:
        split = split_amount(booking.amount, metadata.commission_percent)
        fee = metadata.fee_amount if metadata.fee_amount is not None else split.application_fee_amount
        if 0 <= fee <= booking.amount:
            booking.commission_percent = metadata.commission_percent
            booking.application_fee_amount = fee
            booking.seller_net_amount = booking.amount - fee

    booking.seller_payout_account_id = metadata.seller_payout_account_id or booking.seller_payout_account_id
    booking.status = BookingStatus.PAID_HOLD.value
    booking.paid_at = now
    booking.payment_failure_message = None
    logger.info(
        "Booking paid",
        extra={"booking_id": booking.id, "payment_intent_id": intent.id, "charge_id": booking.charge_id},
    )
    return True


@register_handler("payment_intent.payment_failed")
async def handle_payment_failed(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    """Mark a not-yet-paid booking as payment_failed."""
    intent = _parse_object(PaymentIntentObject, event)
    booking_id = intent.metadata.booking_id
    if not booking_id:
        return False

    booking = await txn.get_for_update(Booking, booking_id)
    if booking is None:
        logger.warning("Payment failed for unknown booking", extra={"booking_id": booking_id})
        return False
    if booking.status not in PRE_PAYMENT_STATUSES:
        logger.info(
            "Ignoring payment failure for booking past payment",
            extra={"booking_id": booking.id, "status": booking.status},
        )
        return False

    booking.status = BookingStatus.PAYMENT_FAILED.value
    error = intent.last_payment_error
    booking.payment_failure_message = (error.message or error.code) if error else None
    logger.info(
        "Booking payment failed",
        extra={"booking_id": booking.id, "reason": booking.payment_failure_message},
    )
    return True


async def _account_for_update(txn: Transaction, uid: str) -> Account:
    account = await txn.get_for_update(Account, uid)
    if account is None:
        account = Account(id=uid, role=AccountRole.BUYER.value, seller_tier=SellerTier.FREE.value)
        txn.add(account)
    return account


async def _apply_subscription(txn: Transaction, event: StripeEvent, deleted: bool) -> bool:
    subscription = _parse_object(SubscriptionObject, event)
    uid = subscription.metadata.uid
    if not uid:
        logger.warning("Subscription event carries no account id", extra={"subscription_id": subscription.id})
        return False

    account = await _account_for_update(txn, uid)

    if deleted:
        account.seller_tier = SellerTier.FREE.value
        account.subscription_status = "canceled"
        account.subscription_id = subscription.id
        logger.info("Seller subscription ended", extra={"account_id": uid, "subscription_id": subscription.id})
        return True

    if account.subscription_id == subscription.id and account.subscription_status == "canceled":
        logger.info(
            "Ignoring stale update for ended subscription",
            extra={"account_id": uid, "subscription_id": subscription.id},
        )
        return False

    tier = (subscription.metadata.tier or "").lower()
    if tier in {t.value for t in SellerTier}:
        account.seller_tier = tier
    role = (subscription.metadata.role or "").lower()
    if role in (AccountRole.GUIDE.value, AccountRole.HOST.value) and account.role == AccountRole.BUYER.value:
        account.role = role
    if subscription.metadata.currency:
        account.seller_currency = subscription.metadata.currency.lower()[:3]
    account.subscription_status = subscription.status
    account.subscription_id = subscription.id
    if subscription.current_period_end:
        account.subscription_period_end = datetime.fromtimestamp(subscription.current_period_end, tz=timezone.utc)

    logger.info(
        "Seller subscription updated",
        extra={"account_id": uid, "tier": account.seller_tier, "status": subscription.status},
    )
    return True


@register_handler("customer.subscription.created")
async def handle_subscription_created(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    return await _apply_subscription(txn, event, deleted=False)


@register_handler("customer.subscription.updated")
async def handle_subscription_updated(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    return await _apply_subscription(txn, event, deleted=False)


@register_handler("customer.subscription.deleted")
async def handle_subscription_deleted(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    return await _apply_subscription(txn, event, deleted=True)


@register_handler("checkout.session.completed")
async def handle_checkout_completed(txn: Transaction, event: StripeEvent, now: datetime) -> bool:
    session = _parse_object(CheckoutSessionObject, event)
    uid = session.metadata.uid
    if not uid:
        return False

    account = await _account_for_update(txn, uid)
    account.last_checkout_session_id = session.id
    account.last_checkout_at = now
    if session.customer and not account.stripe_customer_id:
        account.stripe_customer_id = session.customer
    return True


class WebhookService:
    """Service for verifying and applying payment processor events."""

    def __init__(self, store: TransactionalStore, gateway: PaymentGateway):
        self.store = store
        self.gateway = gateway

    async def handle_event(self, payload: bytes, signature_header: str | None, now: datetime) -> WebhookAck:
        """
        Verify, deduplicate and apply one event.

        Args:
            payload: Raw request body
            signature_header: Stripe-Signature header value
            now: Current time

        Returns:
            WebhookAck: ``duplicate`` is set when the event id was seen before;
            ``handled`` is False for event types with no registered handler

        Raises:
            ValidationError: Bad signature or malformed event
        """
        raw = self.gateway.verify_webhook(payload, signature_header)
        try:
            event = StripeEvent.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(detail="Malformed webhook event") from e

        handler = WEBHOOK_HANDLERS.get(event.type)
        if handler is None:
            logger.info("No handler registered for event type", extra={"event_id": event.id, "event_type": event.type})
            metrics_collector.record_webhook_event(event.type, "ignored")
            return WebhookAck(event_type=event.type, handled=False)

        async def apply(txn: Transaction):
            if await txn.get(ProcessedWebhookEvent, event.id) is not None:
                return None
            handled = await handler(txn, event, now)
            txn.add(ProcessedWebhookEvent(id=event.id, event_type=event.type, processed_at=now))
            return handled

        try:
            handled = await self.store.run_transaction(apply, name=f"webhook.{event.type}")
        except IntegrityError:
            # Concurrent delivery of the same event committed first
            if not await self._already_processed(event.id):
                raise
            handled = None

        if handled is None:
            logger.info("Duplicate webhook event", extra={"event_id": event.id, "event_type": event.type})
            metrics_collector.record_webhook_event(event.type, "duplicate")
            return WebhookAck(event_type=event.type, handled=True, duplicate=True)

        metrics_collector.record_webhook_event(event.type, "applied" if handled else "skipped")
        logger.info(
            "Webhook event processed",
            extra={"event_id": event.id, "event_type": event.type, "applied": handled},
        )
        if handled and event.type == "payment_intent.succeeded":
            await self._settle_owed_refund(event)
        return WebhookAck(event_type=event.type, handled=True)

    async def _settle_owed_refund(self, event: StripeEvent) -> None:
        """Refund a payment that landed on a canceled booking."""
        booking_id = _parse_object(PaymentIntentObject, event).metadata.booking_id
        try:
            await CancellationService(self.store, self.gateway).settle_outstanding_refund(booking_id)
        except InternalServerError:
            logger.warning(
                "Owed refund not issued; left for the refund sweep",
                extra={"booking_id": booking_id, "event_id": event.id},
            )

    async def _already_processed(self, event_id: str) -> bool:
        async def lookup(txn: Transaction) -> bool:
            return await txn.get(ProcessedWebhookEvent, event_id) is not None

        return await self.store.run_transaction(lookup, name="webhook.lookup")
