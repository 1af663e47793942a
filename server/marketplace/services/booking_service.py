"""Booking reads and provider confirmation."""

import logging
from datetime import datetime

from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError
from ..core.store import Transaction, TransactionalStore
from ..models.booking import Booking, BookingStatus
from .access import get_booking_or_raise, is_admin

logger = logging.getLogger(__name__)


class BookingService:
    """Service for booking lookups and confirmation."""

    def __init__(self, store: TransactionalStore):
        self.store = store

    async def get_booking(self, caller: CurrentUser, booking_id: str) -> Booking:
        """Fetch a booking visible to its buyer, its provider or an admin."""

        async def load(txn: Transaction) -> Booking:
            booking = await get_booking_or_raise(txn, booking_id, for_update=False)
            if caller.user_id in (booking.buyer_id, booking.provider_id):
                return booking
            if await is_admin(txn, caller):
                return booking
            raise AuthorizationError(detail="Not a party to this booking")

        return await self.store.run_transaction(load, name="get_booking")

    async def confirm_booking(self, caller: CurrentUser, booking_id: str, now: datetime) -> Booking:
        """
        Provider acknowledgement of a paid booking.

        Moves paid_hold to confirmed. Confirming an already confirmed
        booking is a no-op.

        Raises:
            AuthorizationError: Caller is not the provider
            FailedPreconditionError: Booking is not in paid_hold
        """

        async def confirm(txn: Transaction) -> Booking:
            booking = await get_booking_or_raise(txn, booking_id)
            if booking.provider_id != caller.user_id:
                raise AuthorizationError(detail="Only the provider can confirm this booking")
            if booking.status == BookingStatus.CONFIRMED.value:
                return booking
            if booking.status != BookingStatus.PAID_HOLD.value:
                raise FailedPreconditionError(
                    detail=f"Booking in status {booking.status} cannot be confirmed",
                    reason="BOOKING_NOT_PAID",
                )
            booking.status = BookingStatus.CONFIRMED.value
            booking.confirmed_at = now
            return booking

        booking = await self.store.run_transaction(confirm, name="confirm_booking")
        logger.info("Booking confirmed", extra={"booking_id": booking.id, "provider_id": caller.user_id})
        return booking
