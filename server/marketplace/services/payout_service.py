"""Seller payouts: claim, transfer and record, exactly once per booking."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import select

from ..core.dependencies import CurrentUser
from ..core.exceptions import (
    AuthorizationError,
    FailedPreconditionError,
    InternalServerError,
    NotFoundError,
)
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..gateways.base import PaymentGateway
from ..models.account import Account
from ..models.booking import CHARGED_STATUSES, Booking, PayoutStatus
from ..schemas.payout import RequestPayoutResponse
from .access import get_booking_or_raise

logger = logging.getLogger(__name__)


def payout_key(booking_id: str) -> str:
    return f"payout:{booking_id}"


class PayoutResult(str, Enum):
    PAID = "paid"
    ALREADY_PAID = "already_paid"
    SKIPPED = "skipped"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


@dataclass(frozen=True)
class PayoutOutcome:
    booking_id: str
    result: PayoutResult
    transfer_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class _Claim:
    booking_id: str
    listing_id: str
    amount: int
    currency: str
    destination: str
    charge_id: str


@dataclass
class PayoutRunResult:
    """Summary of one scheduler pass."""

    considered: int = 0
    paid: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: list[PayoutOutcome] = field(default_factory=list)

    def add(self, outcome: PayoutOutcome) -> None:
        self.considered += 1
        self.outcomes.append(outcome)
        if outcome.result == PayoutResult.PAID:
            self.paid += 1
        elif outcome.result == PayoutResult.FAILED:
            self.failed += 1
        else:
            self.skipped += 1


class PayoutService:
    """
    Service for moving a booking's net amount to the seller.

    A booking is claimed by flipping its payout status from not_scheduled
    to pending in a conditional update, so only one worker transfers it.
    A claim left pending longer than ``stale_claim_minutes`` (a crashed
    worker) may be taken over; the transfer's idempotency key makes the
    retried transfer a no-op at the processor.
    """

    def __init__(
        self,
        store: TransactionalStore,
        gateway: PaymentGateway,
        stale_claim_minutes: int = 30,
    ):
        self.store = store
        self.gateway = gateway
        self.stale_claim = timedelta(minutes=stale_claim_minutes)

    async def release_payout(
        self,
        booking_id: str,
        now: datetime,
        buffer: timedelta = timedelta(0),
        allow_account_destination: bool = False,
    ) -> PayoutOutcome:
        """
        Claim, transfer and record the payout of one booking.

        Args:
            booking_id: Booking to pay out
            now: Current time
            buffer: How long after the booking's end the payout may start
            allow_account_destination: Fall back to the provider's connected
                account when the booking has no payout destination recorded

        Returns:
            PayoutOutcome: Never raises for processor failures; those revert
            the claim and report FAILED
        """

        async def claim(txn: Transaction):
            booking = await get_booking_or_raise(txn, booking_id)
            if booking.transfer_id or booking.payout_status == PayoutStatus.PAID.value:
                return PayoutOutcome(booking.id, PayoutResult.ALREADY_PAID, transfer_id=booking.transfer_id)
            if booking.status not in CHARGED_STATUSES:
                return PayoutOutcome(booking.id, PayoutResult.SKIPPED, reason="booking is not charged")
            if booking.end_at + buffer > now:
                return PayoutOutcome(booking.id, PayoutResult.SKIPPED, reason="booking has not finished")

            destination = booking.seller_payout_account_id
            if not destination and allow_account_destination:
                provider = await txn.get(Account, booking.provider_id)
                destination = provider.payout_account_id if provider else None
            if not destination or not booking.seller_net_amount or not booking.charge_id:
                logger.warning(
                    "Booking lacks payout details",
                    extra={
                        "booking_id": booking.id,
                        "has_destination": bool(destination),
                        "has_net_amount": bool(booking.seller_net_amount),
                        "has_charge": bool(booking.charge_id),
                    },
                )
                return PayoutOutcome(booking.id, PayoutResult.SKIPPED, reason="missing payout details")

            values = {
                "payout_status": PayoutStatus.PENDING.value,
                "payout_updated_at": now,
                "seller_payout_account_id": destination,
            }
            claimed = await txn.compare_and_set(
                Booking,
                booking.id,
                expected={
                    "payout_status": PayoutStatus.NOT_SCHEDULED.value,
                    "transfer_id": None,
                    "status": CHARGED_STATUSES,
                },
                values=values,
            )
            if (
                not claimed
                and booking.payout_status == PayoutStatus.PENDING.value
                and booking.payout_updated_at is not None
                and booking.payout_updated_at < now - self.stale_claim
            ):
                claimed = await txn.compare_and_set(
                    Booking,
                    booking.id,
                    expected={
                        "payout_status": PayoutStatus.PENDING.value,
                        "payout_updated_at": booking.payout_updated_at,
                        "transfer_id": None,
                    },
                    values=values,
                )
                if claimed:
                    logger.warning("Reclaiming stale payout claim", extra={"booking_id": booking.id})
            if not claimed:
                return PayoutOutcome(booking.id, PayoutResult.IN_PROGRESS, reason="payout already in progress")

            return _Claim(
                booking_id=booking.id,
                listing_id=booking.listing_id,
                amount=booking.seller_net_amount,
                currency=booking.currency,
                destination=destination,
                charge_id=booking.charge_id,
            )

        claimed = await self.store.run_transaction(claim, name="claim_payout")
        if isinstance(claimed, PayoutOutcome):
            return claimed

        try:
            transfer = await self.gateway.create_transfer(
                amount=claimed.amount,
                currency=claimed.currency,
                destination=claimed.destination,
                source_transaction=claimed.charge_id,
                metadata={"bookingId": claimed.booking_id, "listingId": claimed.listing_id},
                idempotency_key=payout_key(claimed.booking_id),
            )
        except Exception as e:
            await self._release_claim(claimed.booking_id, now, str(e))
            metrics_collector.record_payout("failed")
            logger.error(
                "Payout transfer failed",
                extra={"booking_id": claimed.booking_id, "error": str(e)},
                exc_info=True,
            )
            return PayoutOutcome(claimed.booking_id, PayoutResult.FAILED, reason=str(e))

        async def record(txn: Transaction) -> None:
            booking = await get_booking_or_raise(txn, claimed.booking_id)
            booking.payout_status = PayoutStatus.PAID.value
            booking.transfer_id = transfer.id
            booking.paid_out_at = now
            booking.payout_updated_at = now
            booking.payout_error = None

        await self.store.run_transaction(record, name="record_payout")
        metrics_collector.record_payout("paid")
        logger.info(
            "Payout released",
            extra={
                "booking_id": claimed.booking_id,
                "transfer_id": transfer.id,
                "amount": claimed.amount,
                "destination": claimed.destination,
            },
        )
        return PayoutOutcome(claimed.booking_id, PayoutResult.PAID, transfer_id=transfer.id)

    async def _release_claim(self, booking_id: str, now: datetime, error: str) -> None:
        async def revert(txn: Transaction) -> None:
            await txn.compare_and_set(
                Booking,
                booking_id,
                expected={"payout_status": PayoutStatus.PENDING.value, "transfer_id": None},
                values={
                    "payout_status": PayoutStatus.NOT_SCHEDULED.value,
                    "payout_updated_at": now,
                    "payout_error": error[:1000],
                },
            )

        await self.store.run_transaction(revert, name="release_payout_claim")

    async def request_payout_after_completion(
        self,
        caller: CurrentUser,
        booking_id: str,
        now: datetime,
    ) -> RequestPayoutResponse:
        """
        Seller-initiated payout of a finished booking.

        Raises:
            AuthorizationError: Caller is not the booking's provider
            FailedPreconditionError: Not charged, not finished, claimed
                elsewhere, or no payout destination
            InternalServerError: The transfer failed
        """

        async def check(txn: Transaction) -> Booking:
            booking = await get_booking_or_raise(txn, booking_id, for_update=False)
            if booking.provider_id != caller.user_id:
                raise AuthorizationError(detail="Only the provider can request this payout")
            return booking

        booking = await self.store.run_transaction(check, name="check_payout_request")
        if booking.transfer_id:
            return RequestPayoutResponse(transfer_id=booking.transfer_id, already_done=True)
        if booking.status not in CHARGED_STATUSES:
            raise FailedPreconditionError(detail="Booking has not been paid", reason="BOOKING_NOT_CHARGED")
        if booking.end_at > now:
            raise FailedPreconditionError(detail="Booking has not finished yet", reason="BOOKING_NOT_FINISHED")

        outcome = await self.release_payout(booking_id, now, allow_account_destination=True)
        if outcome.result == PayoutResult.PAID:
            return RequestPayoutResponse(transfer_id=outcome.transfer_id, already_done=False)
        if outcome.result == PayoutResult.ALREADY_PAID:
            return RequestPayoutResponse(transfer_id=outcome.transfer_id or "", already_done=True)
        if outcome.result == PayoutResult.IN_PROGRESS:
            raise FailedPreconditionError(detail="payout already in progress", reason="PAYOUT_IN_PROGRESS")
        if outcome.result == PayoutResult.FAILED:
            raise InternalServerError(detail="Payout transfer failed; it can be requested again")
        raise FailedPreconditionError(detail=f"Payout not possible: {outcome.reason}")


class PayoutScheduler:
    """Recurring job that pays out finished bookings in batches."""

    def __init__(
        self,
        store: TransactionalStore,
        payout_service: PayoutService,
        buffer_minutes: int = 60,
        batch_size: int = 200,
    ):
        self.store = store
        self.payout_service = payout_service
        self.buffer = timedelta(minutes=buffer_minutes)
        self.batch_size = batch_size

    async def run(self, now: datetime) -> PayoutRunResult:
        """
        Pay out every charged booking that ended at least ``buffer`` ago.

        Bookings are handled one at a time; a failure on one never stops
        the rest of the batch.
        """

        async def candidates(txn: Transaction):
            stmt = (
                select(Booking.id)
                .where(
                    Booking.status.in_(list(CHARGED_STATUSES)),
                    Booking.payout_status.in_([PayoutStatus.NOT_SCHEDULED.value, PayoutStatus.PENDING.value]),
                    Booking.transfer_id.is_(None),
                    Booking.end_at <= now - self.buffer,
                )
                .order_by(Booking.end_at)
                .limit(self.batch_size)
            )
            return await txn.scalars(stmt)

        booking_ids = await self.store.run_transaction(candidates, name="payout_candidates")
        result = PayoutRunResult()
        for booking_id in booking_ids:
            try:
                outcome = await self.payout_service.release_payout(booking_id, now, buffer=self.buffer)
            except NotFoundError:
                continue
            result.add(outcome)

        if result.considered:
            logger.info(
                "Payout run finished",
                extra={
                    "considered": result.considered,
                    "paid": result.paid,
                    "skipped": result.skipped,
                    "failed": result.failed,
                },
            )
        return result
