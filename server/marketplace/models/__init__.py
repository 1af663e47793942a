"""Models module exporting all database models."""

from .account import SELLER_ROLES, Account, AccountRole, SellerTier
from .availability import AvailabilitySlot, SlotStatus
from .booking import (
    CANCELED_STATUSES,
    CHARGED_STATUSES,
    PAYABLE_STATUSES,
    PRE_PAYMENT_STATUSES,
    Booking,
    BookingStatus,
    PayoutStatus,
)
from .listing import Listing, ListingType
from .review import Review
from .webhook_event import ProcessedWebhookEvent

__all__ = [
    # Parties
    "Account",
    "AccountRole",
    "SellerTier",
    "SELLER_ROLES",

    # Catalog
    "Listing",
    "ListingType",
    "AvailabilitySlot",
    "SlotStatus",

    # Booking entities
    "Booking",
    "BookingStatus",
    "PayoutStatus",
    "PRE_PAYMENT_STATUSES",
    "CHARGED_STATUSES",
    "CANCELED_STATUSES",
    "PAYABLE_STATUSES",

    # Reviews
    "Review",

    # Processor events
    "ProcessedWebhookEvent",
]
