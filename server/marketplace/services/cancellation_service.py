"""Booking cancellation with policy-driven refunds."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select

from ..core.dependencies import CurrentUser
from ..core.exceptions import (
    AuthorizationError,
    FailedPreconditionError,
    InternalServerError,
    PaymentGatewayError,
)
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..gateways.base import PaymentGateway
from ..models.booking import (
    CANCELED_STATUSES,
    CHARGED_STATUSES,
    PRE_PAYMENT_STATUSES,
    Booking,
    BookingStatus,
    PayoutStatus,
)
from ..models.listing import Listing
from ..schemas.booking import CancelBookingResponse
from .access import get_booking_or_raise, is_admin, release_slot
from .pricing import DEFAULT_FREE_CANCEL_HOURS, clamp_percent, refund_amount, refund_percent

logger = logging.getLogger(__name__)


def refund_key(booking_id: str) -> str:
    return f"refund:{booking_id}"


@dataclass(frozen=True)
class CancellationPlan:
    """What remains to do at the processor once the cancel has committed."""

    booking_id: str
    kind: str
    refund_percent: int
    refund_amount: int = 0
    charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    transfer_to_reverse: Optional[str] = None
    reversal_amount: Optional[int] = None


def _guard_payout(booking: Booking, admin: bool) -> None:
    if booking.payout_status == PayoutStatus.PENDING.value:
        raise FailedPreconditionError(
            detail="A payout for this booking is in progress; retry shortly",
            reason="PAYOUT_IN_PROGRESS",
        )
    if booking.payout_status == PayoutStatus.PAID.value and not admin:
        raise FailedPreconditionError(
            detail="Booking has already been paid out to the seller",
            reason="PAYOUT_COMPLETED",
        )


def _mark_canceled(booking: Booking, status: str, caller_id: str, now: datetime, percent: int, amount: int) -> None:
    booking.status = status
    booking.canceled_at = now
    booking.canceled_by = caller_id
    booking.refund_percent_applied = percent
    booking.refund_amount = amount
    booking.refunded = False


def _retry_plan(booking: Booking) -> CancellationPlan:
    return CancellationPlan(
        booking_id=booking.id,
        kind="refund_retry",
        refund_percent=booking.refund_percent_applied or 0,
        refund_amount=booking.refund_amount or 0,
        charge_id=booking.charge_id,
        payment_intent_id=booking.payment_intent_id,
    )


class CancellationService:
    """Service for canceling bookings and refunding buyers."""

    def __init__(self, store: TransactionalStore, gateway: PaymentGateway):
        self.store = store
        self.gateway = gateway

    async def cancel_booking(self, caller: CurrentUser, booking_id: str, now: datetime) -> CancelBookingResponse:
        """
        Cancel a booking under the listing's cancellation policy.

        The cancel and slot release commit first. The refund is then
        issued under a per-booking idempotency key and recorded in a
        second transaction. If the processor call fails the booking stays
        canceled with the refund outstanding, and calling this again
        retries only the refund.

        Raises:
            AuthorizationError: Caller is not buyer, provider or admin
            FailedPreconditionError: Already canceled, or payout started or completed
            InternalServerError: The refund could not be issued
        """

        async def prepare(txn: Transaction) -> CancellationPlan:
            booking = await get_booking_or_raise(txn, booking_id)
            admin = await is_admin(txn, caller)
            if caller.user_id not in (booking.buyer_id, booking.provider_id) and not admin:
                raise AuthorizationError(detail="Only the buyer, the provider or an admin can cancel")

            if booking.is_canceled:
                if booking.refund_outstanding:
                    return _retry_plan(booking)
                raise FailedPreconditionError(detail="Booking is already canceled", reason="ALREADY_CANCELED")

            _guard_payout(booking, admin)

            if booking.status in PRE_PAYMENT_STATUSES:
                _mark_canceled(booking, BookingStatus.CANCELED.value, caller.user_id, now, 0, 0)
                await release_slot(txn, booking)
                return CancellationPlan(
                    booking_id=booking.id,
                    kind="unpaid",
                    refund_percent=0,
                    payment_intent_id=booking.payment_intent_id,
                )

            if booking.status not in CHARGED_STATUSES:
                raise FailedPreconditionError(detail=f"Booking in status {booking.status} cannot be canceled")

            listing = await txn.get(Listing, booking.listing_id)
            percent = refund_percent(
                booking.start_at,
                now,
                free_cancel_hours=listing.free_cancel_hours if listing else DEFAULT_FREE_CANCEL_HOURS,
                refund_percent_after_deadline=listing.refund_percent_after_deadline if listing else 0,
            )
            amount = refund_amount(booking.amount, percent)
            _mark_canceled(booking, BookingStatus.CANCELED.value, caller.user_id, now, percent, amount)
            await release_slot(txn, booking)

            reverse = admin and booking.transfer_id is not None
            return CancellationPlan(
                booking_id=booking.id,
                kind="charged",
                refund_percent=percent,
                refund_amount=amount,
                charge_id=booking.charge_id,
                payment_intent_id=booking.payment_intent_id,
                transfer_to_reverse=booking.transfer_id if reverse else None,
            )

        plan = await self.store.run_transaction(prepare, name="cancel_booking")
        return await self._settle(plan)

    async def admin_override_cancel(
        self,
        caller: CurrentUser,
        booking_id: str,
        percent: int,
        now: datetime,
    ) -> CancelBookingResponse:
        """
        Cancel as an administrator with an explicit refund percentage.

        Bypasses the listing policy and the completed-payout guard. When
        the seller was already paid, the transfer is reversed in
        proportion to the refund.

        Raises:
            AuthorizationError: Caller is not an admin
            FailedPreconditionError: Already canceled, or payout in progress
        """
        percent = clamp_percent(percent)

        async def prepare(txn: Transaction) -> CancellationPlan:
            if not await is_admin(txn, caller):
                raise AuthorizationError(detail="Admin role required")
            booking = await get_booking_or_raise(txn, booking_id)

            if booking.is_canceled:
                if booking.refund_outstanding:
                    return _retry_plan(booking)
                raise FailedPreconditionError(detail="Booking is already canceled", reason="ALREADY_CANCELED")

            _guard_payout(booking, admin=True)

            charged = booking.status in CHARGED_STATUSES
            amount = refund_amount(booking.amount, percent) if charged else 0
            _mark_canceled(booking, BookingStatus.CANCELED_ADMIN.value, caller.user_id, now, percent, amount)
            booking.admin_override_by = caller.user_id
            await release_slot(txn, booking)

            reversal_amount = None
            if booking.transfer_id and booking.seller_net_amount:
                reversal_amount = refund_amount(booking.seller_net_amount, percent)

            return CancellationPlan(
                booking_id=booking.id,
                kind="charged" if charged else "unpaid",
                refund_percent=percent,
                refund_amount=amount,
                charge_id=booking.charge_id,
                payment_intent_id=booking.payment_intent_id,
                transfer_to_reverse=booking.transfer_id if reversal_amount else None,
                reversal_amount=reversal_amount,
            )

        plan = await self.store.run_transaction(prepare, name="admin_override_cancel")
        logger.info(
            "Admin override cancellation",
            extra={"booking_id": booking_id, "admin_id": caller.user_id, "refund_percent": percent},
        )
        return await self._settle(plan)

    async def settle_outstanding_refund(self, booking_id: str) -> bool:
        """
        Issue the refund still owed on a canceled booking, if any.

        Uses the booking's refund idempotency key, so settling a refund
        that a concurrent cancel retry already issued is harmless.

        Returns:
            True when a refund was issued, False when nothing was owed

        Raises:
            InternalServerError: The processor refused the refund
        """

        async def load(txn: Transaction) -> Optional[CancellationPlan]:
            booking = await get_booking_or_raise(txn, booking_id, for_update=False)
            return _retry_plan(booking) if booking.refund_outstanding else None

        plan = await self.store.run_transaction(load, name="load_outstanding_refund")
        if plan is None:
            return False
        await self._refund(plan)
        return True

    async def settle_outstanding_refunds(self, batch_size: int = 200) -> int:
        """Sweep canceled bookings whose refund never went through; returns how many were settled."""

        async def candidates(txn: Transaction):
            stmt = (
                select(Booking.id)
                .where(
                    Booking.status.in_(list(CANCELED_STATUSES)),
                    Booking.refunded.is_(False),
                    Booking.refund_amount > 0,
                    or_(Booking.charge_id.is_not(None), Booking.payment_intent_id.is_not(None)),
                )
                .order_by(Booking.canceled_at)
                .limit(batch_size)
            )
            return await txn.scalars(stmt)

        settled = 0
        for booking_id in await self.store.run_transaction(candidates, name="outstanding_refunds"):
            try:
                if await self.settle_outstanding_refund(booking_id):
                    settled += 1
            except InternalServerError:
                continue
        if settled:
            logger.info("Outstanding refunds settled", extra={"count": settled})
        return settled

    async def _settle(self, plan: CancellationPlan) -> CancelBookingResponse:
        metrics_collector.record_cancellation(plan.kind)

        if plan.kind == "unpaid":
            if plan.payment_intent_id:
                await self._cancel_intent(plan)
            logger.info("Unpaid booking canceled", extra={"booking_id": plan.booking_id})
            return CancelBookingResponse(canceled=True, refunded=False, refund_percent=plan.refund_percent)

        refunded = False
        if plan.refund_amount > 0:
            await self._refund(plan)
            refunded = True

        if plan.transfer_to_reverse:
            await self._reverse_transfer(plan)

        logger.info(
            "Booking canceled",
            extra={
                "booking_id": plan.booking_id,
                "refund_percent": plan.refund_percent,
                "refund_amount": plan.refund_amount,
            },
        )
        return CancelBookingResponse(canceled=True, refunded=refunded, refund_percent=plan.refund_percent)

    async def _refund(self, plan: CancellationPlan) -> None:
        try:
            refund = await self.gateway.create_refund(
                amount=plan.refund_amount,
                idempotency_key=refund_key(plan.booking_id),
                charge_id=plan.charge_id,
                payment_intent_id=None if plan.charge_id else plan.payment_intent_id,
                metadata={"bookingId": plan.booking_id},
            )
        except PaymentGatewayError as e:
            metrics_collector.record_refund("failed")
            logger.error(
                "Refund failed; booking stays canceled with refund outstanding",
                extra={"booking_id": plan.booking_id, "refund_amount": plan.refund_amount, "error": str(e)},
            )
            raise InternalServerError(
                detail="Booking was canceled but the refund could not be issued; retry the cancellation"
            ) from e

        async def record(txn: Transaction) -> None:
            booking = await get_booking_or_raise(txn, plan.booking_id)
            booking.refunded = True
            booking.refund_id = refund.id

        await self.store.run_transaction(record, name="record_refund")
        metrics_collector.record_refund("succeeded")
        logger.info(
            "Refund issued",
            extra={"booking_id": plan.booking_id, "refund_id": refund.id, "amount": refund.amount},
        )

    async def _cancel_intent(self, plan: CancellationPlan) -> None:
        try:
            await self.gateway.cancel_payment_intent(
                plan.payment_intent_id, idempotency_key=f"cancel_payment_intent:{plan.booking_id}"
            )
        except PaymentGatewayError as e:
            logger.warning(
                "Could not cancel payment intent for canceled booking",
                extra={"booking_id": plan.booking_id, "payment_intent_id": plan.payment_intent_id, "error": str(e)},
            )

    async def _reverse_transfer(self, plan: CancellationPlan) -> None:
        try:
            await self.gateway.reverse_transfer(
                plan.transfer_to_reverse,
                amount=plan.reversal_amount,
                idempotency_key=f"reversal:{plan.booking_id}",
            )
        except PaymentGatewayError as e:
            logger.error(
                "Transfer reversal failed; reconcile manually",
                extra={"booking_id": plan.booking_id, "transfer_id": plan.transfer_to_reverse, "error": str(e)},
            )
            return
        logger.info(
            "Transfer reversed",
            extra={"booking_id": plan.booking_id, "transfer_id": plan.transfer_to_reverse},
        )
