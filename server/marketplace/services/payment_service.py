"""Payment intent creation with commission split."""

import logging
from dataclasses import dataclass

from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..gateways.base import PaymentGateway
from ..models.account import Account
from ..models.booking import PAYABLE_STATUSES, PRE_PAYMENT_STATUSES, Booking, BookingStatus
from ..schemas.payment import PaymentIntentResponse
from .access import get_booking_or_raise
from .pricing import CommissionSplit, commission_percent_for_tier, split_amount

logger = logging.getLogger(__name__)


def payment_intent_key(booking_id: str) -> str:
    return f"payment_intent:{booking_id}"


@dataclass(frozen=True)
class _IntentPlan:
    booking_id: str
    listing_id: str
    listing_type: str
    buyer_id: str
    provider_id: str
    amount: int
    currency: str
    destination: str
    split: CommissionSplit


def _existing_response(booking: Booking) -> PaymentIntentResponse:
    return PaymentIntentResponse(
        payment_intent_id=booking.payment_intent_id,
        client_secret=booking.client_secret,
        amount=booking.amount,
        currency=booking.currency,
        commission_percent=booking.commission_percent or 0,
        application_fee_amount=booking.application_fee_amount or 0,
        seller_net_amount=booking.seller_net_amount if booking.seller_net_amount is not None else booking.amount,
    )


class PaymentService:
    """Service for creating payment authorizations on bookings."""

    def __init__(self, store: TransactionalStore, gateway: PaymentGateway):
        self.store = store
        self.gateway = gateway

    async def create_payment_intent(self, caller: CurrentUser, booking_id: str) -> PaymentIntentResponse:
        """
        Create, or return the existing, payment intent for a booking.

        The processor call runs outside any transaction and carries a
        deterministic idempotency key, so a retried request yields the
        same intent. The intent id is persisted only if the booking has
        none yet; a concurrent creator's stored intent wins.

        Raises:
            AuthorizationError: Caller is not the booking's buyer
            FailedPreconditionError: Booking is not awaiting payment, or the
                seller has no connected payout account
            NotFoundError: Booking or seller account absent
            PaymentGatewayError: Processor call failed
        """

        async def plan(txn: Transaction):
            booking = await get_booking_or_raise(txn, booking_id, for_update=False)
            if booking.buyer_id != caller.user_id:
                raise AuthorizationError(detail="Only the buyer can pay for this booking")

            if booking.payment_intent_id and booking.client_secret and booking.status in PRE_PAYMENT_STATUSES:
                return _existing_response(booking)

            if booking.status not in PAYABLE_STATUSES:
                raise FailedPreconditionError(
                    detail=f"Booking in status {booking.status} cannot be paid",
                    reason="BOOKING_NOT_PAYABLE",
                )

            seller = await txn.get(Account, booking.provider_id)
            if seller is None:
                raise NotFoundError(resource_type="account", resource_id=booking.provider_id)
            if not seller.payout_account_id:
                raise FailedPreconditionError(
                    detail="Seller has not connected a payout account",
                    reason="SELLER_NOT_CONNECTED",
                )

            return _IntentPlan(
                booking_id=booking.id,
                listing_id=booking.listing_id,
                listing_type=booking.listing_type,
                buyer_id=booking.buyer_id,
                provider_id=booking.provider_id,
                amount=booking.amount,
                currency=booking.currency,
                destination=seller.payout_account_id,
                split=split_amount(booking.amount, commission_percent_for_tier(seller.seller_tier)),
            )

        planned = await self.store.run_transaction(plan, name="plan_payment_intent")
        if isinstance(planned, PaymentIntentResponse):
            metrics_collector.record_payment_intent("reused")
            logger.info("Returning existing payment intent", extra={"booking_id": booking_id})
            return planned

        split = planned.split
        intent = await self.gateway.create_payment_intent(
            amount=planned.amount,
            currency=planned.currency,
            metadata={
                "bookingId": planned.booking_id,
                "listingId": planned.listing_id,
                "listingType": planned.listing_type,
                "buyerUid": planned.buyer_id,
                "sellerUid": planned.provider_id,
                "sellerStripeAccountId": planned.destination,
                "commissionPercent": str(split.commission_percent),
                "feeAmount": str(split.application_fee_amount),
            },
            idempotency_key=payment_intent_key(planned.booking_id),
        )

        async def persist(txn: Transaction):
            stored = await txn.compare_and_set(
                Booking,
                planned.booking_id,
                expected={"payment_intent_id": None, "status": PAYABLE_STATUSES},
                values={
                    "payment_intent_id": intent.id,
                    "client_secret": intent.client_secret,
                    "commission_percent": split.commission_percent,
                    "application_fee_amount": split.application_fee_amount,
                    "seller_net_amount": split.seller_net_amount,
                    "status": BookingStatus.PAYMENT_INTENT_CREATED.value,
                },
            )
            if stored:
                return None
            return await get_booking_or_raise(txn, planned.booking_id, for_update=False)

        current = await self.store.run_transaction(persist, name="persist_payment_intent")
        if current is None:
            metrics_collector.record_payment_intent("created")
            logger.info(
                "Payment intent created",
                extra={
                    "booking_id": planned.booking_id,
                    "payment_intent_id": intent.id,
                    "amount": planned.amount,
                    "commission_percent": split.commission_percent,
                },
            )
            return PaymentIntentResponse(
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                amount=planned.amount,
                currency=planned.currency,
                commission_percent=split.commission_percent,
                application_fee_amount=split.application_fee_amount,
                seller_net_amount=split.seller_net_amount,
            )

        if current.payment_intent_id and current.client_secret:
            metrics_collector.record_payment_intent("reused")
            logger.info(
                "Concurrent request stored the payment intent first",
                extra={"booking_id": current.id, "payment_intent_id": current.payment_intent_id},
            )
            return _existing_response(current)

        logger.warning(
            "Booking left the payable state while its intent was created",
            extra={"booking_id": current.id, "status": current.status, "payment_intent_id": intent.id},
        )
        raise FailedPreconditionError(
            detail=f"Booking in status {current.status} cannot be paid",
            reason="BOOKING_NOT_PAYABLE",
        )
