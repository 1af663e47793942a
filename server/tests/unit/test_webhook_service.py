"""Unit tests for payment processor event handling."""

import pytest

from marketplace.core.exceptions import ValidationError
from marketplace.models import Account, Booking, ProcessedWebhookEvent
from marketplace.services.cancellation_service import CancellationService
from marketplace.services.webhook_service import WEBHOOK_HANDLERS, WebhookService

from ..conftest import NOW
from ..factories import create_booking, reload
from ..fakes import payment_intent_object, sign_payload, webhook_payload


async def deliver(store, gateway, event_id, event_type, obj, now=NOW):
    payload = webhook_payload(event_id, event_type, obj)
    return await WebhookService(store, gateway).handle_event(payload, sign_payload(payload), now)


async def intent_booking(store, world, **kwargs):
    """Booking whose payment intent has been created with the pro-tier split."""
    booking = await create_booking(
        store,
        world.slot,
        world.buyer.id,
        status="payment_intent_created",
        payment_intent_id="pi_1",
        **kwargs,
    )

    async def snapshot(txn):
        row = await txn.get_for_update(Booking, booking.id)
        row.commission_percent = 10
        row.application_fee_amount = 1000
        row.seller_net_amount = 9000
        return row

    return await store.run_transaction(snapshot)


def test_handlers_registered():
    """Test that every supported event type has a handler."""
    assert set(WEBHOOK_HANDLERS) >= {
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "checkout.session.completed",
    }


@pytest.mark.asyncio
async def test_payment_succeeded_moves_booking_to_paid_hold(store, gateway, world):
    """Test that a successful payment records the charge and commission snapshot."""
    booking = await intent_booking(store, world)

    ack = await deliver(store, gateway, "evt_1", "payment_intent.succeeded", payment_intent_object(booking))

    assert ack.handled is True
    assert ack.duplicate is False
    stored = await reload(store, Booking, booking.id)
    assert stored.status == "paid_hold"
    assert stored.charge_id == "ch_1"
    assert stored.paid_at == NOW
    assert stored.commission_percent == 10
    assert stored.application_fee_amount == 1000
    assert stored.seller_net_amount == 9000
    assert stored.seller_payout_account_id == "acct_guide"


@pytest.mark.asyncio
async def test_payment_succeeded_reads_charge_from_charge_list(store, gateway, world):
    """Test the charge id fallback for events carrying a charges list."""
    booking = await intent_booking(store, world)
    obj = payment_intent_object(booking)
    del obj["latest_charge"]
    obj["charges"] = {"data": [{"id": "ch_from_list"}]}

    await deliver(store, gateway, "evt_1", "payment_intent.succeeded", obj)

    stored = await reload(store, Booking, booking.id)
    assert stored.charge_id == "ch_from_list"


@pytest.mark.asyncio
async def test_duplicate_event_applied_once(store, gateway, world):
    """Test that a redelivered event id is acknowledged without reapplying it."""
    booking = await intent_booking(store, world)
    obj = payment_intent_object(booking)

    await deliver(store, gateway, "evt_1", "payment_intent.succeeded", obj)
    ack = await deliver(store, gateway, "evt_1", "payment_intent.succeeded", obj, now=NOW.replace(hour=12))

    assert ack.duplicate is True
    stored = await reload(store, Booking, booking.id)
    assert stored.paid_at == NOW
    record = await reload(store, ProcessedWebhookEvent, "evt_1")
    assert record.event_type == "payment_intent.succeeded"


@pytest.mark.asyncio
async def test_payment_succeeded_replay_keeps_confirmed_status(store, gateway, world):
    """Test that a new event for a confirmed booking does not move it back to paid_hold."""
    booking = await create_booking(store, world.slot, world.buyer.id, status="confirmed")

    ack = await deliver(
        store, gateway, "evt_2", "payment_intent.succeeded", payment_intent_object(booking, charge_id="ch_other")
    )

    assert ack.handled is True
    stored = await reload(store, Booking, booking.id)
    assert stored.status == "confirmed"
    assert stored.charge_id == "ch_test"


@pytest.mark.asyncio
async def test_payment_succeeded_for_unknown_booking(store, gateway, world):
    """Test that an event for a missing booking is recorded and ignored."""
    obj = {"id": "pi_x", "latest_charge": "ch_x", "metadata": {"bookingId": "missing"}}

    ack = await deliver(store, gateway, "evt_3", "payment_intent.succeeded", obj)

    assert ack.handled is True
    assert await reload(store, ProcessedWebhookEvent, "evt_3") is not None


@pytest.mark.asyncio
async def test_payment_succeeded_with_mismatched_intent(store, gateway, world):
    """Test that an event for a different intent than the stored one is ignored."""
    booking = await intent_booking(store, world)

    await deliver(store, gateway, "evt_4", "payment_intent.succeeded", payment_intent_object(booking, intent_id="pi_9"))

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "payment_intent_created"


@pytest.mark.asyncio
async def test_payment_succeeded_ignores_out_of_range_commission(store, gateway, world):
    """Test that a corrupt commission snapshot leaves the stored split untouched."""
    booking = await intent_booking(store, world)

    await deliver(
        store,
        gateway,
        "evt_5",
        "payment_intent.succeeded",
        payment_intent_object(booking, commissionPercent="250", feeAmount="99999"),
    )

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "paid_hold"
    assert stored.commission_percent == 10
    assert stored.seller_net_amount == 9000


@pytest.mark.asyncio
async def test_payment_succeeded_after_cancellation_is_refunded_in_full(store, gateway, world):
    """Test that a payment landing on a canceled booking is refunded in full right away."""
    booking = await intent_booking(store, world)

    async def cancel(txn):
        row = await txn.get_for_update(Booking, booking.id)
        row.status = "canceled"
        row.refund_amount = 0

    await store.run_transaction(cancel)

    await deliver(store, gateway, "evt_6", "payment_intent.succeeded", payment_intent_object(booking))

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "canceled"
    assert stored.charge_id == "ch_1"
    assert stored.refund_percent_applied == 100
    assert stored.refund_amount == stored.amount
    assert stored.refunded is True
    assert stored.refund_outstanding is False
    [call] = gateway.calls_of("create_refund")
    assert call["amount"] == stored.amount
    assert call["charge_id"] == "ch_1"
    assert call["idempotency_key"] == f"refund:{booking.id}"


@pytest.mark.asyncio
async def test_owed_refund_left_for_sweep_when_processor_fails(store, gateway, world):
    """Test that a refused refund is acknowledged and later settled by the sweep."""
    booking = await intent_booking(store, world)

    async def cancel(txn):
        row = await txn.get_for_update(Booking, booking.id)
        row.status = "canceled"
        row.refund_amount = 0

    await store.run_transaction(cancel)
    gateway.fail_refund = True

    ack = await deliver(store, gateway, "evt_6b", "payment_intent.succeeded", payment_intent_object(booking))

    assert ack.handled is True
    assert (await reload(store, Booking, booking.id)).refund_outstanding is True

    gateway.fail_refund = False
    settled = await CancellationService(store, gateway).settle_outstanding_refunds()

    assert settled == 1
    stored = await reload(store, Booking, booking.id)
    assert stored.refunded is True
    assert {call["idempotency_key"] for call in gateway.calls_of("create_refund")} == {f"refund:{booking.id}"}


@pytest.mark.asyncio
async def test_payment_failed_records_reason(store, gateway, world):
    """Test that a failed payment moves the booking to payment_failed."""
    booking = await intent_booking(store, world)
    obj = payment_intent_object(booking)
    obj["last_payment_error"] = {"code": "card_declined", "message": "Your card was declined."}

    await deliver(store, gateway, "evt_7", "payment_intent.payment_failed", obj)

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "payment_failed"
    assert stored.payment_failure_message == "Your card was declined."


@pytest.mark.asyncio
async def test_payment_failed_after_success_is_ignored(store, gateway, world):
    """Test that a late failure event never downgrades a paid booking."""
    booking = await create_booking(store, world.slot, world.buyer.id)

    await deliver(store, gateway, "evt_8", "payment_intent.payment_failed", payment_intent_object(booking))

    stored = await reload(store, Booking, booking.id)
    assert stored.status == "paid_hold"


@pytest.mark.asyncio
async def test_subscription_created_sets_tier_and_role(store, gateway, world):
    """Test that a new subscription upgrades a buyer to a seller tier and role."""
    obj = {
        "id": "sub_1",
        "status": "active",
        "current_period_end": 1775000000,
        "metadata": {"uid": world.buyer.id, "tier": "elite", "role": "host", "currency": "USD"},
    }

    await deliver(store, gateway, "evt_9", "customer.subscription.created", obj)

    account = await reload(store, Account, world.buyer.id)
    assert account.seller_tier == "elite"
    assert account.role == "host"
    assert account.seller_currency == "usd"
    assert account.subscription_status == "active"
    assert account.subscription_id == "sub_1"
    assert account.subscription_period_end is not None


@pytest.mark.asyncio
async def test_subscription_creates_missing_account(store, gateway, world):
    """Test that a subscription for an unknown uid creates the account."""
    obj = {"id": "sub_2", "status": "active", "metadata": {"uid": "new-seller", "tier": "pro", "role": "guide"}}

    await deliver(store, gateway, "evt_10", "customer.subscription.created", obj)

    account = await reload(store, Account, "new-seller")
    assert account.seller_tier == "pro"
    assert account.role == "guide"


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_to_free(store, gateway, world):
    """Test that ending a subscription returns the seller to the free tier."""
    obj = {"id": "sub_1", "status": "canceled", "metadata": {"uid": world.guide.id}}

    await deliver(store, gateway, "evt_11", "customer.subscription.deleted", obj)

    account = await reload(store, Account, world.guide.id)
    assert account.seller_tier == "free"
    assert account.subscription_status == "canceled"
    assert account.role == "guide"


@pytest.mark.asyncio
async def test_stale_subscription_update_after_delete_is_ignored(store, gateway, world):
    """Test that an update delivered after the delete does not restore the tier."""
    deleted = {"id": "sub_1", "status": "canceled", "metadata": {"uid": world.guide.id}}
    stale = {"id": "sub_1", "status": "active", "metadata": {"uid": world.guide.id, "tier": "elite"}}

    await deliver(store, gateway, "evt_12", "customer.subscription.deleted", deleted)
    await deliver(store, gateway, "evt_13", "customer.subscription.updated", stale)

    account = await reload(store, Account, world.guide.id)
    assert account.seller_tier == "free"


@pytest.mark.asyncio
async def test_checkout_completed_recorded(store, gateway, world):
    """Test that a completed checkout session is noted on the account."""
    obj = {"id": "cs_1", "customer": "cus_9", "metadata": {"uid": world.guide.id}}

    await deliver(store, gateway, "evt_14", "checkout.session.completed", obj)

    account = await reload(store, Account, world.guide.id)
    assert account.last_checkout_session_id == "cs_1"
    assert account.last_checkout_at == NOW
    assert account.stripe_customer_id == "cus_9"


@pytest.mark.asyncio
async def test_unknown_event_type_not_handled(store, gateway, world):
    """Test that unsupported event types are acknowledged and not recorded."""
    ack = await deliver(store, gateway, "evt_15", "invoice.paid", {"id": "in_1"})

    assert ack.handled is False
    assert await reload(store, ProcessedWebhookEvent, "evt_15") is None


@pytest.mark.asyncio
async def test_invalid_signature_rejected(store, gateway, world):
    """Test that a payload signed with the wrong secret is rejected."""
    payload = webhook_payload("evt_16", "invoice.paid", {"id": "in_1"})
    service = WebhookService(store, gateway)

    with pytest.raises(ValidationError):
        await service.handle_event(payload, sign_payload(payload, secret="whsec_wrong"), NOW)


@pytest.mark.asyncio
async def test_missing_signature_rejected(store, gateway, world):
    """Test that a payload without a signature header is rejected."""
    payload = webhook_payload("evt_17", "invoice.paid", {"id": "in_1"})
    service = WebhookService(store, gateway)

    with pytest.raises(ValidationError):
        await service.handle_event(payload, None, NOW)


@pytest.mark.asyncio
async def test_malformed_event_rejected(store, gateway, world):
    """Test that a signed body without an event envelope is rejected."""
    payload = b'{"hello": "world"}'
    service = WebhookService(store, gateway)

    with pytest.raises(ValidationError):
        await service.handle_event(payload, sign_payload(payload), NOW)
