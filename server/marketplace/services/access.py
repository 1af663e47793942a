"""Lookups and role checks shared by the booking services."""

import logging
from datetime import datetime, timezone

from ..core.dependencies import CurrentUser
from ..core.exceptions import NotFoundError, ValidationError
from ..core.store import Transaction
from ..models.account import Account, AccountRole
from ..models.availability import AvailabilitySlot, SlotStatus
from ..models.booking import Booking

logger = logging.getLogger(__name__)


async def is_admin(txn: Transaction, caller: CurrentUser) -> bool:
    """Admin by token claim, or by the role stored on the caller's account."""
    if caller.has_admin_claim:
        return True
    account = await txn.get(Account, caller.user_id)
    return account is not None and account.role == AccountRole.ADMIN.value


async def get_booking_or_raise(txn: Transaction, booking_id: str, for_update: bool = True) -> Booking:
    if for_update:
        booking = await txn.get_for_update(Booking, booking_id)
    else:
        booking = await txn.get(Booking, booking_id)
    if booking is None:
        logger.warning("Booking not found", extra={"booking_id": booking_id})
        raise NotFoundError(resource_type="booking", resource_id=booking_id)
    return booking


async def release_slot(txn: Transaction, booking: Booking) -> bool:
    """Reopen the booking's slot if it is still held by this booking."""
    released = await txn.compare_and_set(
        AvailabilitySlot,
        booking.slot_id,
        expected={"booking_id": booking.id},
        values={
            "status": SlotStatus.OPEN.value,
            "booking_id": None,
            "reserved_by": None,
            "reserved_at": None,
        },
    )
    if not released:
        logger.warning(
            "Slot was not held by the canceled booking",
            extra={"booking_id": booking.id, "slot_id": booking.slot_id},
        )
    return released


def parse_timestamp(value: str, field_name: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Values without an offset are taken to be UTC.

    Raises:
        ValidationError: If the value does not parse
    """
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise ValidationError(
            detail=f"{field_name} is not a valid ISO 8601 timestamp",
            violations=[{"field": field_name, "message": "invalid timestamp"}],
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
