"""Unit tests for payment intent creation."""

import pytest

from marketplace.core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError
from marketplace.models import Account, Booking
from marketplace.services.payment_service import PaymentService, payment_intent_key

from ..factories import create_booking, reload


async def pending_booking(store, world, **kwargs):
    return await create_booking(store, world.slot, world.buyer.id, status="pending_payment", **kwargs)


@pytest.mark.asyncio
async def test_create_payment_intent(store, gateway, world):
    """Test creating an intent with the pro-tier commission split."""
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)

    response = await service.create_payment_intent(world.buyer_user, booking.id)

    assert response.amount == 10000
    assert response.currency == "eur"
    assert response.commission_percent == 10
    assert response.application_fee_amount == 1000
    assert response.seller_net_amount == 9000
    assert response.client_secret == f"{response.payment_intent_id}_secret"

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "payment_intent_created"
    assert stored.payment_intent_id == response.payment_intent_id
    assert stored.application_fee_amount + stored.seller_net_amount == stored.amount


@pytest.mark.asyncio
async def test_create_payment_intent_sends_metadata_and_key(store, gateway, world):
    """Test the processor call carries booking metadata and a deterministic key."""
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)

    await service.create_payment_intent(world.buyer_user, booking.id)

    [call] = gateway.calls_of("create_payment_intent")
    assert call["idempotency_key"] == payment_intent_key(booking.id)
    assert call["metadata"]["bookingId"] == booking.id
    assert call["metadata"]["sellerStripeAccountId"] == "acct_guide"
    assert call["metadata"]["commissionPercent"] == "10"
    assert call["metadata"]["feeAmount"] == "1000"
    assert call["metadata"]["buyerUid"] == world.buyer.id
    assert call["metadata"]["sellerUid"] == world.guide.id


@pytest.mark.asyncio
async def test_create_payment_intent_free_tier(store, gateway, world):
    """Test that a free-tier seller pays 15% commission."""

    async def downgrade(txn):
        account = await txn.get_for_update(Account, world.guide.id)
        account.seller_tier = "free"

    await store.run_transaction(downgrade)
    booking = await pending_booking(store, world, amount=10)
    service = PaymentService(store, gateway)

    response = await service.create_payment_intent(world.buyer_user, booking.id)

    assert response.commission_percent == 15
    assert response.application_fee_amount == 2
    assert response.seller_net_amount == 8


@pytest.mark.asyncio
async def test_create_payment_intent_is_idempotent(store, gateway, world):
    """Test that a second request returns the stored intent without a new processor call."""
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)

    first = await service.create_payment_intent(world.buyer_user, booking.id)
    second = await service.create_payment_intent(world.buyer_user, booking.id)

    assert second.payment_intent_id == first.payment_intent_id
    assert second.client_secret == first.client_secret
    assert len(gateway.calls_of("create_payment_intent")) == 1


@pytest.mark.asyncio
async def test_create_payment_intent_after_failure(store, gateway, world):
    """Test that a failed payment can be retried with a new intent request."""
    booking = await pending_booking(store, world)

    async def fail(txn):
        row = await txn.get_for_update(Booking, booking.id)
        row.status = "payment_failed"

    await store.run_transaction(fail)
    service = PaymentService(store, gateway)

    response = await service.create_payment_intent(world.buyer_user, booking.id)

    assert response.payment_intent_id
    stored = await reload(store, Booking, booking.id)
    assert stored.status == "payment_intent_created"


@pytest.mark.asyncio
async def test_create_payment_intent_not_buyer(store, gateway, world):
    """Test that only the buyer can create the intent."""
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)

    with pytest.raises(AuthorizationError):
        await service.create_payment_intent(world.guide_user, booking.id)

    assert gateway.calls_of("create_payment_intent") == []


@pytest.mark.asyncio
async def test_create_payment_intent_for_paid_booking(store, gateway, world):
    """Test that a charged booking cannot be paid again."""
    booking = await create_booking(store, world.slot, world.buyer.id)
    service = PaymentService(store, gateway)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await service.create_payment_intent(world.buyer_user, booking.id)

    assert exc_info.value.problem_details["reason"] == "BOOKING_NOT_PAYABLE"


@pytest.mark.asyncio
async def test_create_payment_intent_seller_not_connected(store, gateway, world):
    """Test that a seller without a payout account cannot be paid."""

    async def disconnect(txn):
        account = await txn.get_for_update(Account, world.guide.id)
        account.payout_account_id = None

    await store.run_transaction(disconnect)
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await service.create_payment_intent(world.buyer_user, booking.id)

    assert exc_info.value.problem_details["reason"] == "SELLER_NOT_CONNECTED"


@pytest.mark.asyncio
async def test_create_payment_intent_unknown_booking(store, gateway, world):
    """Test that a missing booking raises NotFoundError."""
    service = PaymentService(store, gateway)

    with pytest.raises(NotFoundError):
        await service.create_payment_intent(world.buyer_user, "missing-booking")


@pytest.mark.asyncio
async def test_create_payment_intent_loses_race_to_stored_intent(store, gateway, world):
    """Test that an intent stored by a concurrent request wins."""
    booking = await pending_booking(store, world)
    service = PaymentService(store, gateway)
    original = gateway.create_payment_intent

    async def racing_create(**kwargs):
        async def store_other(txn):
            row = await txn.get_for_update(Booking, booking.id)
            row.payment_intent_id = "pi_other"
            row.client_secret = "pi_other_secret"
            row.status = "payment_intent_created"
            row.commission_percent = 10
            row.application_fee_amount = 1000
            row.seller_net_amount = 9000

        await store.run_transaction(store_other)
        return await original(**kwargs)

    gateway.create_payment_intent = racing_create

    response = await service.create_payment_intent(world.buyer_user, booking.id)

    assert response.payment_intent_id == "pi_other"
    stored = await reload(store, Booking, booking.id)
    assert stored.payment_intent_id == "pi_other"
