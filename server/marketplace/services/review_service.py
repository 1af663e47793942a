"""Reviews and rating aggregation."""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..core.dependencies import CurrentUser
from ..core.exceptions import AlreadyExistsError, AuthorizationError, FailedPreconditionError, ValidationError
from ..core.observability import metrics_collector
from ..core.store import Transaction, TransactionalStore
from ..models.account import Account
from ..models.booking import CHARGED_STATUSES
from ..models.listing import Listing
from ..models.review import Review
from .access import get_booking_or_raise
from .ratings import RatingAggregate, apply_rating

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


class ReviewService:
    """Service for accepting one review per completed booking."""

    def __init__(self, store: TransactionalStore):
        self.store = store

    async def add_review(
        self,
        caller: CurrentUser,
        booking_id: str,
        rating: int,
        comment: str,
        now: datetime,
    ) -> Review:
        """
        Store a review and fold it into the listing and provider ratings.

        The review, the listing aggregate and the provider aggregate are
        written in one transaction. The review id is the booking id, so a
        second review for the same booking cannot be stored.

        Raises:
            ValidationError: Rating outside 1..5
            AuthorizationError: Caller is not the buyer
            FailedPreconditionError: Booking not paid or not finished
            AlreadyExistsError: Booking already reviewed
        """
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError(
                detail="rating must be an integer from 1 to 5",
                violations=[{"field": "rating", "message": "must be between 1 and 5"}],
            )
        comment = (comment or "")[:MAX_COMMENT_LENGTH]

        async def add(txn: Transaction) -> Review:
            booking = await get_booking_or_raise(txn, booking_id, for_update=False)
            if booking.buyer_id != caller.user_id:
                raise AuthorizationError(detail="Only the buyer can review this booking")
            if booking.status not in CHARGED_STATUSES:
                raise FailedPreconditionError(
                    detail=f"Booking in status {booking.status} cannot be reviewed",
                    reason="BOOKING_NOT_REVIEWABLE",
                )
            if booking.end_at > now:
                raise FailedPreconditionError(detail="Booking has not finished yet", reason="BOOKING_NOT_FINISHED")
            if await txn.get(Review, booking.id) is not None:
                raise AlreadyExistsError(resource_type="review", resource_id=booking.id)

            review = Review(
                id=booking.id,
                buyer_id=caller.user_id,
                listing_type=booking.listing_type,
                listing_id=booking.listing_id,
                provider_id=booking.provider_id,
                rating=rating,
                comment=comment,
                created_at=now,
            )
            txn.add(review)

            listing = await txn.get_for_update(Listing, booking.listing_id)
            if listing is not None:
                apply_rating(RatingAggregate.from_row(listing), rating, now).write_to(listing)

            provider = await txn.get_for_update(Account, booking.provider_id)
            if provider is not None:
                apply_rating(RatingAggregate.from_row(provider), rating, now).write_to(provider)

            await txn.flush()
            return review

        try:
            review = await self.store.run_transaction(add, name="add_review")
        except IntegrityError as e:
            raise AlreadyExistsError(resource_type="review", resource_id=booking_id) from e

        metrics_collector.record_review_added(review.listing_type)
        logger.info(
            "Review added",
            extra={"booking_id": booking_id, "listing_id": review.listing_id, "rating": rating},
        )
        return review
