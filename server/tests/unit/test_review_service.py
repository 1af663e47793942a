"""Unit tests for reviews and rating aggregation."""

from datetime import timedelta

import pytest

from marketplace.core.exceptions import (
    AlreadyExistsError,
    AuthorizationError,
    FailedPreconditionError,
    ValidationError,
)
from marketplace.models import Account, Listing, Review
from marketplace.services.ratings import bayesian_score, iso_week_key
from marketplace.services.review_service import MAX_COMMENT_LENGTH, ReviewService

from ..conftest import NOW
from ..factories import create_booking, create_slot, reload


async def finished_booking(store, world, hours_ago: int = 10, **kwargs):
    slot = await create_slot(store, world.listing, NOW - timedelta(hours=hours_ago))
    return await create_booking(store, slot, world.buyer.id, **kwargs)


@pytest.mark.asyncio
async def test_add_review_updates_aggregates(store, world):
    """Test that a review updates the listing and provider ratings."""
    booking = await finished_booking(store, world)
    service = ReviewService(store)

    review = await service.add_review(world.buyer_user, booking.id, 4, "Lovely walk", NOW)

    assert review.id == booking.id
    assert review.rating == 4
    assert review.listing_id == world.listing.id

    listing = await reload(store, Listing, world.listing.id)
    assert listing.rating_avg == 4.0
    assert listing.rating_count == 1
    assert listing.weighted_score == pytest.approx(bayesian_score(4.0, 1))
    assert listing.week_key == iso_week_key(NOW)
    assert listing.week_rating_count == 1

    provider = await reload(store, Account, world.guide.id)
    assert provider.rating_avg == 4.0
    assert provider.rating_count == 1


@pytest.mark.asyncio
async def test_reviews_accumulate_across_bookings(store, world):
    """Test that two reviews average on the shared listing."""
    first = await finished_booking(store, world, hours_ago=30)
    second = await finished_booking(store, world, hours_ago=10)
    service = ReviewService(store)

    await service.add_review(world.buyer_user, first.id, 5, "", NOW)
    await service.add_review(world.buyer_user, second.id, 2, "", NOW + timedelta(days=8))

    listing = await reload(store, Listing, world.listing.id)
    assert listing.rating_count == 2
    assert listing.rating_avg == pytest.approx(3.5)
    assert listing.week_rating_count == 1
    assert listing.week_rating_avg == 2.0


@pytest.mark.asyncio
async def test_add_review_twice(store, world):
    """Test that a booking can only be reviewed once."""
    booking = await finished_booking(store, world)
    service = ReviewService(store)
    await service.add_review(world.buyer_user, booking.id, 5, "", NOW)

    with pytest.raises(AlreadyExistsError):
        await service.add_review(world.buyer_user, booking.id, 1, "changed my mind", NOW)

    listing = await reload(store, Listing, world.listing.id)
    assert listing.rating_count == 1
    assert listing.rating_avg == 5.0


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [0, 6, -1])
async def test_add_review_rating_out_of_range(store, world, rating):
    """Test that ratings outside 1..5 are rejected."""
    booking = await finished_booking(store, world)
    service = ReviewService(store)

    with pytest.raises(ValidationError):
        await service.add_review(world.buyer_user, booking.id, rating, "", NOW)


@pytest.mark.asyncio
async def test_add_review_before_end(store, world):
    """Test that a booking cannot be reviewed before it ends."""
    booking = await create_booking(store, world.slot, world.buyer.id)
    service = ReviewService(store)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await service.add_review(world.buyer_user, booking.id, 5, "", NOW)

    assert exc_info.value.problem_details["reason"] == "BOOKING_NOT_FINISHED"


@pytest.mark.asyncio
async def test_add_review_for_canceled_booking(store, world):
    """Test that only paid bookings can be reviewed."""
    booking = await finished_booking(store, world, status="canceled")
    service = ReviewService(store)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await service.add_review(world.buyer_user, booking.id, 5, "", NOW)

    assert exc_info.value.problem_details["reason"] == "BOOKING_NOT_REVIEWABLE"


@pytest.mark.asyncio
async def test_add_review_not_buyer(store, world):
    """Test that the provider cannot review their own booking."""
    booking = await finished_booking(store, world)
    service = ReviewService(store)

    with pytest.raises(AuthorizationError):
        await service.add_review(world.guide_user, booking.id, 5, "", NOW)


@pytest.mark.asyncio
async def test_add_review_truncates_comment(store, world):
    """Test that long comments are stored truncated."""
    booking = await finished_booking(store, world)
    service = ReviewService(store)

    await service.add_review(world.buyer_user, booking.id, 3, "x" * (MAX_COMMENT_LENGTH + 50), NOW)

    review = await reload(store, Review, booking.id)
    assert len(review.comment) == MAX_COMMENT_LENGTH
