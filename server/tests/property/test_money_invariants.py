"""Property-based tests for money and rating invariants."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from marketplace.services.pricing import (
    COMMISSION_PERCENT_BY_TIER,
    refund_amount,
    refund_percent,
    split_amount,
)
from marketplace.services.ratings import RatingAggregate, apply_rating, iso_week_key

pytestmark = pytest.mark.property

# Strategies for generating test data
amounts = st.integers(min_value=1, max_value=10_000_000)
percents = st.integers(min_value=0, max_value=100)
any_percents = st.integers(min_value=-500, max_value=500)
ratings = st.integers(min_value=1, max_value=5)
moments = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(timezone.utc),
)


@given(amount=amounts, percent=percents)
def test_fee_and_net_sum_to_amount(amount, percent):
    """Test that the split never creates or loses a minor unit."""
    split = split_amount(amount, percent)

    assert split.application_fee_amount + split.seller_net_amount == amount
    assert 0 <= split.application_fee_amount <= amount


@given(amount=amounts, percent=percents)
def test_fee_is_nearest_half_up(amount, percent):
    """Test that the fee is within half a unit of the exact share."""
    fee = split_amount(amount, percent).application_fee_amount
    exact = amount * percent

    assert fee * 100 - 50 <= exact < fee * 100 + 50


@given(amount=amounts, tier=st.sampled_from(sorted(COMMISSION_PERCENT_BY_TIER)))
def test_higher_tiers_never_pay_more(amount, tier):
    """Test that no tier pays a larger fee than the free tier."""
    free_fee = split_amount(amount, COMMISSION_PERCENT_BY_TIER["free"]).application_fee_amount
    tier_fee = split_amount(amount, COMMISSION_PERCENT_BY_TIER[tier]).application_fee_amount

    assert tier_fee <= free_fee


@given(amount=amounts, percent=any_percents)
def test_refund_amount_bounded(amount, percent):
    """Test that a refund is never negative nor more than was paid."""
    assert 0 <= refund_amount(amount, percent) <= amount


@given(
    hours_before=st.floats(min_value=-1000, max_value=1000, allow_nan=False),
    free_cancel_hours=st.integers(min_value=0, max_value=720),
    after_deadline=any_percents,
)
def test_refund_percent_in_range(hours_before, free_cancel_hours, after_deadline):
    """Test that the policy always yields a percentage in 0..100."""
    now = datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
    start = now + timedelta(hours=hours_before)

    percent = refund_percent(start, now, free_cancel_hours, after_deadline)

    assert 0 <= percent <= 100
    if hours_before >= free_cancel_hours:
        assert percent == 100


@given(values=st.lists(ratings, min_size=1, max_size=50), now=moments)
def test_rating_average_matches_mean(values, now):
    """Test that the running average equals the plain mean of all ratings."""
    aggregate = RatingAggregate()
    for value in values:
        aggregate = apply_rating(aggregate, value, now)

    assert aggregate.rating_count == len(values)
    assert aggregate.rating_avg == pytest.approx(sum(values) / len(values))
    assert aggregate.week_rating_count == len(values)


@given(values=st.lists(ratings, min_size=1, max_size=50), now=moments)
def test_weighted_score_between_mean_and_prior(values, now):
    """Test that the Bayesian score lies between the raw mean and the prior."""
    aggregate = RatingAggregate()
    for value in values:
        aggregate = apply_rating(aggregate, value, now)

    low = min(aggregate.rating_avg, 4.5)
    high = max(aggregate.rating_avg, 4.5)
    assert low - 1e-9 <= aggregate.weighted_score <= high + 1e-9


@given(moment=moments)
def test_week_key_format_and_monday(moment):
    """Test that week keys are well formed and stable within an ISO week."""
    key = iso_week_key(moment)
    monday = (moment - timedelta(days=moment.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)

    year, week = key.split("-W")
    assert len(year) == 4
    assert 1 <= int(week) <= 53
    assert iso_week_key(monday) == key
