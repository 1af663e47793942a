"""Business services for the marketplace."""

from .account_service import AccountService
from .availability_service import AvailabilityService
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .listing_service import ListingService
from .payment_service import PaymentService
from .payout_service import PayoutScheduler, PayoutService
from .reservation_service import ReservationService
from .review_service import ReviewService
from .webhook_service import WebhookService

__all__ = [
    "AccountService",
    "AvailabilityService",
    "BookingService",
    "CancellationService",
    "ListingService",
    "PaymentService",
    "PayoutScheduler",
    "PayoutService",
    "ReservationService",
    "ReviewService",
    "WebhookService",
]
