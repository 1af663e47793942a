"""API tests covering the booking lifecycle over HTTP."""

from datetime import timedelta

import pytest

from marketplace.core.config import settings
from marketplace.models import Booking

from ..conftest import NOW
from ..factories import create_booking, create_slot, reload
from ..fakes import payment_intent_object, sign_payload, webhook_payload


def reserve_body(world, **overrides):
    body = {
        "listingType": "tour",
        "listingId": world.listing.id,
        "providerId": world.guide.id,
        "slotId": world.slot.id,
        "startISO": world.slot.start_at.isoformat(),
        "endISO": world.slot.end_at.isoformat(),
        "amount": 10000,
        "currency": "eur",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_requires_authentication(test_client, world):
    """Test that calls without a bearer token are rejected."""
    response = await test_client.post("/v1/booking/reserve", json=reserve_body(world))

    assert response.status_code == 401
    data = response.json()
    assert data["code"] == "UNAUTHENTICATED"
    assert data["status"] == 401


@pytest.mark.asyncio
async def test_rejects_bad_token(test_client, world):
    """Test that a token signed with another secret is rejected."""
    response = await test_client.post(
        "/v1/booking/reserve",
        json=reserve_body(world),
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_validation_error_lists_violations(test_client, auth_headers, world):
    """Test that schema failures come back as InvalidArgument with field violations."""
    response = await test_client.post(
        "/v1/booking/reserve",
        json=reserve_body(world, amount=0),
        headers=auth_headers("buyer-1"),
    )

    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "INVALID_ARGUMENT"
    assert any(v["field"] == "amount" for v in data["violations"])


@pytest.mark.asyncio
async def test_unknown_fields_rejected(test_client, auth_headers, world):
    """Test that unexpected request fields are rejected."""
    response = await test_client.post(
        "/v1/booking/reserve",
        json=reserve_body(world, discount=50),
        headers=auth_headers("buyer-1"),
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reserve_conflict_over_http(test_client, auth_headers, world):
    """Test that the second reservation of a slot gets FAILED_PRECONDITION."""
    first = await test_client.post("/v1/booking/reserve", json=reserve_body(world), headers=auth_headers("buyer-1"))
    second = await test_client.post("/v1/booking/reserve", json=reserve_body(world), headers=auth_headers("buyer-2"))

    assert first.status_code == 200
    assert "bookingId" in first.json()
    assert second.status_code == 409
    assert second.json()["code"] == "FAILED_PRECONDITION"
    assert second.json()["reason"] == "SLOT_RESERVED"


@pytest.mark.asyncio
async def test_booking_not_found(test_client, auth_headers, world):
    """Test that an unknown booking id is NOT_FOUND."""
    response = await test_client.post(
        "/v1/booking/get", json={"bookingId": "missing"}, headers=auth_headers("buyer-1")
    )

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_full_booking_lifecycle(test_client, auth_headers, store, gateway, clock, world):
    """Test reserve, pay, confirm, complete, pay out and review over HTTP."""
    buyer = auth_headers("buyer-1")
    guide = auth_headers("guide-1")

    reserved = await test_client.post("/v1/booking/reserve", json=reserve_body(world), headers=buyer)
    assert reserved.status_code == 200
    booking_id = reserved.json()["bookingId"]

    intent = await test_client.post("/v1/payment/intent", json={"bookingId": booking_id}, headers=buyer)
    assert intent.status_code == 200
    intent_data = intent.json()
    assert intent_data["commissionPercent"] == 10
    assert intent_data["applicationFeeAmount"] == 1000
    assert intent_data["sellerNetAmount"] == 9000

    booking = await reload(store, Booking, booking_id)
    payload = webhook_payload("evt_paid", "payment_intent.succeeded", payment_intent_object(booking))
    webhook = await test_client.post(
        "/v1/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign_payload(payload)}
    )
    assert webhook.status_code == 200
    assert webhook.json()["handled"] is True

    confirmed = await test_client.post("/v1/booking/confirm", json={"bookingId": booking_id}, headers=guide)
    assert confirmed.json()["status"] == "confirmed"

    early = await test_client.post("/v1/payout/request", json={"bookingId": booking_id}, headers=guide)
    assert early.status_code == 409

    clock.advance(days=8)

    payout = await test_client.post("/v1/payout/request", json={"bookingId": booking_id}, headers=guide)
    assert payout.status_code == 200
    assert payout.json()["alreadyDone"] is False
    assert payout.json()["transferId"].startswith("tr_")

    review = await test_client.post(
        "/v1/review/add", json={"bookingId": booking_id, "rating": 5, "comment": "Superb"}, headers=buyer
    )
    assert review.status_code == 200
    assert review.json()["reviewId"] == booking_id

    view = await test_client.post("/v1/booking/get", json={"bookingId": booking_id}, headers=buyer)
    data = view.json()
    assert data["status"] == "confirmed"
    assert data["payoutStatus"] == "paid"
    assert data["amount"] == data["applicationFeeAmount"] + data["sellerNetAmount"]

    listing = await test_client.post("/v1/listing/get", json={"listingId": world.listing.id}, headers=buyer)
    assert listing.json()["ratingCount"] == 1


@pytest.mark.asyncio
async def test_cancel_over_http(test_client, auth_headers, store, gateway, world):
    """Test a buyer cancellation with a full refund."""
    booking = await create_booking(store, world.slot, world.buyer.id)

    response = await test_client.post(
        "/v1/booking/cancel", json={"bookingId": booking.id}, headers=auth_headers("buyer-1")
    )

    assert response.status_code == 200
    assert response.json() == {"canceled": True, "refunded": True, "refundPercent": 100}


@pytest.mark.asyncio
async def test_cancel_refund_failure_is_internal(test_client, auth_headers, store, gateway, world):
    """Test that a failed refund surfaces as a 500 problem and leaves the booking canceled."""
    booking = await create_booking(store, world.slot, world.buyer.id)
    gateway.fail_refund = True

    response = await test_client.post(
        "/v1/booking/cancel", json={"bookingId": booking.id}, headers=auth_headers("buyer-1")
    )

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL"
    stored = await reload(store, Booking, booking.id)
    assert stored.status == "canceled"


@pytest.mark.asyncio
async def test_admin_override_over_http(test_client, auth_headers, store, world):
    """Test the admin override endpoint with a token role claim."""
    booking = await create_booking(store, world.slot, world.buyer.id)

    denied = await test_client.post(
        "/v1/admin/override-cancel",
        json={"bookingId": booking.id, "refundPercent": 40},
        headers=auth_headers("guide-1"),
    )
    allowed = await test_client.post(
        "/v1/admin/override-cancel",
        json={"bookingId": booking.id, "refundPercent": 40},
        headers=auth_headers("ops-1", roles=("admin",)),
    )

    assert denied.status_code == 403
    assert denied.json()["code"] == "PERMISSION_DENIED"
    assert allowed.status_code == 200
    assert allowed.json()["refundPercent"] == 40


@pytest.mark.asyncio
async def test_review_duplicate_over_http(test_client, auth_headers, store, world):
    """Test that a second review of a booking is ALREADY_EXISTS."""
    slot = await create_slot(store, world.listing, NOW - timedelta(hours=10))
    booking = await create_booking(store, slot, world.buyer.id)
    body = {"bookingId": booking.id, "rating": 4}

    first = await test_client.post("/v1/review/add", json=body, headers=auth_headers("buyer-1"))
    second = await test_client.post("/v1/review/add", json=body, headers=auth_headers("buyer-1"))

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["code"] == "ALREADY_EXISTS"


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(test_client, world):
    """Test that an unsigned webhook is a 400."""
    payload = webhook_payload("evt_bad", "payment_intent.succeeded", {"id": "pi_1"})

    response = await test_client.post(
        "/v1/webhooks/stripe", content=payload, headers={"Stripe-Signature": "t=1,v1=deadbeef"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_ARGUMENT"


@pytest.mark.asyncio
async def test_webhook_duplicate_acknowledged(test_client, world):
    """Test that a redelivered event is acknowledged as a duplicate."""
    payload = webhook_payload("evt_sub", "checkout.session.completed", {"id": "cs_1", "metadata": {"uid": "guide-1"}})
    headers = {"Stripe-Signature": sign_payload(payload)}

    first = await test_client.post("/v1/webhooks/stripe", content=payload, headers=headers)
    second = await test_client.post("/v1/webhooks/stripe", content=payload, headers=headers)

    assert first.json()["duplicate"] is False
    assert second.status_code == 200
    assert second.json()["duplicate"] is True


@pytest.mark.asyncio
async def test_account_flow_over_http(test_client, auth_headers, gateway):
    """Test registering as a host, creating an experience and connecting payouts."""
    host = auth_headers("host-9", email="host9@example.com")

    registered = await test_client.post("/v1/account/register", json={"role": "host"}, headers=host)
    assert registered.status_code == 200
    assert registered.json()["role"] == "host"

    created = await test_client.post(
        "/v1/listing/create",
        json={"listingType": "experience", "title": "Pasta workshop", "priceAmount": 6500},
        headers=host,
    )
    assert created.status_code == 200
    listing_id = created.json()["id"]

    start = NOW + timedelta(days=3)
    slot = await test_client.post(
        "/v1/availability/create",
        json={
            "listingId": listing_id,
            "startISO": start.isoformat(),
            "endISO": (start + timedelta(hours=2)).isoformat(),
        },
        headers=host,
    )
    assert slot.status_code == 200
    assert slot.json()["status"] == "open"

    connected = await test_client.post("/v1/account/connect-payout", headers=host)
    assert connected.status_code == 200
    assert connected.json()["payoutAccountId"].startswith("acct_")

    me = await test_client.post("/v1/account/me", headers=host)
    assert me.json()["payoutAccountId"] == connected.json()["payoutAccountId"]


@pytest.mark.asyncio
async def test_seller_billing_over_http(test_client, auth_headers, world, gateway, monkeypatch):
    """Test subscribing to a seller plan and then opening the billing portal."""
    monkeypatch.setattr(settings, "subscription_price_ids", {"guide.elite.eur": "price_guide_elite_eur"})
    guide = auth_headers("guide-1")

    portal = await test_client.post("/v1/account/billing-portal", headers=guide)
    assert portal.status_code == 409
    assert portal.json()["reason"] == "NO_BILLING_CUSTOMER"

    rejected = await test_client.post(
        "/v1/account/subscription-checkout", json={"tier": "free", "role": "guide"}, headers=guide
    )
    assert rejected.status_code == 400
    assert any(v["field"] == "tier" for v in rejected.json()["violations"])

    checkout = await test_client.post(
        "/v1/account/subscription-checkout", json={"tier": "elite", "role": "guide"}, headers=guide
    )
    assert checkout.status_code == 200
    body = checkout.json()
    assert body["currency"] == "eur"
    assert body["url"].endswith(body["sessionId"])

    portal = await test_client.post("/v1/account/billing-portal", headers=guide)
    assert portal.status_code == 200
    assert portal.json()["url"].startswith("https://billing.example.test/cus_")
