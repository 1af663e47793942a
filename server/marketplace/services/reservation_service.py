"""Reservation coordinator: atomically claims a slot and opens a booking."""

import logging
from datetime import datetime
from uuid import uuid4

from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..models.availability import AvailabilitySlot, SlotStatus
from ..models.booking import Booking, BookingStatus, PayoutStatus
from ..models.listing import Listing
from ..schemas.booking import ReserveSlotRequest
from .access import parse_timestamp

logger = logging.getLogger(__name__)


class SlotAlreadyReservedError(FailedPreconditionError):
    """The slot was taken by another booking."""

    def __init__(self, slot_id: str):
        super().__init__(
            detail=f"Slot {slot_id} is no longer available",
            reason="SLOT_RESERVED",
        )


class ReservationService:
    """Service for reserving availability slots."""

    def __init__(self, store: TransactionalStore):
        self.store = store

    async def reserve_slot_and_create_booking(
        self,
        caller: CurrentUser,
        request: ReserveSlotRequest,
        now: datetime,
    ) -> Booking:
        """
        Reserve a slot and create its booking in one transaction.

        The slot flips from open to reserved with a conditional update;
        when two callers race, exactly one update matches and the other
        fails with SlotAlreadyReservedError.

        Args:
            caller: Buyer making the reservation
            request: Reservation details
            now: Current time

        Returns:
            The new booking in pending_payment

        Raises:
            ValidationError: Unparseable or inverted times, times or listing that
                do not match the slot
            NotFoundError: Slot or listing absent
            AuthorizationError: Slot belongs to a different provider
            FailedPreconditionError: Slot already reserved or closed
        """
        start_at = parse_timestamp(request.start_iso, "startISO")
        end_at = parse_timestamp(request.end_iso, "endISO")
        if end_at <= start_at:
            raise ValidationError(
                detail="endISO must be after startISO",
                violations=[{"field": "endISO", "message": "must be after startISO"}],
            )

        booking_id = str(uuid4())

        async def reserve(txn: Transaction) -> Booking:
            slot = await txn.get_for_update(AvailabilitySlot, request.slot_id)
            if slot is None:
                raise NotFoundError(resource_type="slot", resource_id=request.slot_id)
            if slot.provider_id != request.provider_id:
                raise AuthorizationError(detail="Slot does not belong to this provider")
            if slot.listing_id != request.listing_id:
                raise ValidationError(detail="Slot does not belong to this listing")
            mismatched = [
                {"field": field, "message": "must match the slot"}
                for field, requested, actual in (("startISO", start_at, slot.start_at), ("endISO", end_at, slot.end_at))
                if requested != actual
            ]
            if mismatched:
                raise ValidationError(detail="Booking times must match the slot", violations=mismatched)
            if slot.status == SlotStatus.CLOSED.value:
                raise FailedPreconditionError(detail=f"Slot {slot.id} is closed", reason="SLOT_CLOSED")
            if slot.status == SlotStatus.RESERVED.value:
                raise SlotAlreadyReservedError(slot.id)

            listing = await txn.get(Listing, request.listing_id)
            if listing is None:
                raise NotFoundError(resource_type="listing", resource_id=request.listing_id)
            if listing.listing_type != request.listing_type.value:
                raise ValidationError(detail="listingType does not match the listing")

            claimed = await txn.compare_and_set(
                AvailabilitySlot,
                slot.id,
                expected={"status": SlotStatus.OPEN.value},
                values={
                    "status": SlotStatus.RESERVED.value,
                    "booking_id": booking_id,
                    "reserved_by": caller.user_id,
                    "reserved_at": now,
                },
            )
            if not claimed:
                raise SlotAlreadyReservedError(slot.id)

            booking = Booking(
                id=booking_id,
                buyer_id=caller.user_id,
                provider_id=request.provider_id,
                listing_type=request.listing_type.value,
                listing_id=request.listing_id,
                slot_id=slot.id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                people_count=request.people_count,
                amount=request.amount,
                currency=(request.currency or listing.currency or settings.default_currency).lower(),
                status=BookingStatus.PENDING_PAYMENT.value,
                payout_status=PayoutStatus.NOT_SCHEDULED.value,
                created_at=now,
            )
            txn.add(booking)
            return booking

        try:
            booking = await self.store.run_transaction(reserve, name="reserve_slot")
        except SlotAlreadyReservedError:
            metrics_collector.record_reservation_conflict()
            logger.info(
                "Reservation lost the race for a slot",
                extra={"slot_id": request.slot_id, "buyer_id": caller.user_id},
            )
            raise

        metrics_collector.record_slot_reserved(booking.listing_type)
        logger.info(
            "Slot reserved and booking created",
            extra={
                "booking_id": booking.id,
                "slot_id": booking.slot_id,
                "listing_id": booking.listing_id,
                "buyer_id": booking.buyer_id,
                "amount": booking.amount,
                "currency": booking.currency,
            },
        )
        return booking
