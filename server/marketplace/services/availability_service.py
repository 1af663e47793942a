"""Availability slot publishing."""

import logging
from datetime import datetime
from uuid import uuid4

from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError, ValidationError
from ..core.store import Transaction, TransactionalStore
from ..models.availability import AvailabilitySlot, SlotStatus
from ..models.listing import Listing
from ..schemas.availability import CreateSlotRequest
from .access import parse_timestamp

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Service for provider-managed availability slots."""

    def __init__(self, store: TransactionalStore):
        self.store = store

    async def create_slot(self, caller: CurrentUser, request: CreateSlotRequest, now: datetime) -> AvailabilitySlot:
        """
        Publish an open slot on one of the caller's listings.

        Raises:
            ValidationError: Unparseable times, end not after start, or start in the past
            NotFoundError: Listing absent
            AuthorizationError: Listing belongs to someone else
        """
        start_at = parse_timestamp(request.start_iso, "startISO")
        end_at = parse_timestamp(request.end_iso, "endISO")
        if end_at <= start_at:
            raise ValidationError(
                detail="endISO must be after startISO",
                violations=[{"field": "endISO", "message": "must be after startISO"}],
            )
        if start_at <= now:
            raise ValidationError(
                detail="Slots must start in the future",
                violations=[{"field": "startISO", "message": "must be in the future"}],
            )

        async def create(txn: Transaction) -> AvailabilitySlot:
            listing = await txn.get(Listing, request.listing_id)
            if listing is None:
                raise NotFoundError(resource_type="listing", resource_id=request.listing_id)
            if listing.provider_id != caller.user_id:
                raise AuthorizationError(detail="Only the listing owner can publish slots")

            slot = AvailabilitySlot(
                id=str(uuid4()),
                provider_id=listing.provider_id,
                listing_id=listing.id,
                start_at=start_at,
                end_at=end_at,
                status=SlotStatus.OPEN.value,
            )
            txn.add(slot)
            await txn.flush()
            return slot

        slot = await self.store.run_transaction(create, name="create_slot")
        logger.info("Slot created", extra={"slot_id": slot.id, "listing_id": slot.listing_id})
        return slot

    async def close_slot(self, caller: CurrentUser, slot_id: str) -> AvailabilitySlot:
        """Withdraw an open slot. Reserved slots stay with their booking."""

        async def close(txn: Transaction) -> AvailabilitySlot:
            slot = await txn.get_for_update(AvailabilitySlot, slot_id)
            if slot is None:
                raise NotFoundError(resource_type="slot", resource_id=slot_id)
            if slot.provider_id != caller.user_id:
                raise AuthorizationError(detail="Only the provider can close this slot")
            if slot.status == SlotStatus.RESERVED.value:
                raise FailedPreconditionError(detail="Slot is reserved by a booking", reason="SLOT_RESERVED")
            slot.status = SlotStatus.CLOSED.value
            return slot

        return await self.store.run_transaction(close, name="close_slot")
