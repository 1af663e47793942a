"""
Payment processor event schemas.

Only the fields the handlers read are declared; everything else in the
processor payload is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EventData(EventModel):
    object: dict[str, Any]


class StripeEvent(EventModel):
    """Envelope common to every event."""

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    data: EventData


class ChargeRef(EventModel):
    id: str


class ChargeList(EventModel):
    data: list[ChargeRef] = Field(default_factory=list)


class PaymentIntentMetadata(EventModel):
    booking_id: str | None = Field(None, alias="bookingId")
    seller_payout_account_id: str | None = Field(None, alias="sellerStripeAccountId")
    commission_percent: int | None = Field(None, alias="commissionPercent")
    fee_amount: int | None = Field(None, alias="feeAmount")


class PaymentErrorDetail(EventModel):
    code: str | None = None
    message: str | None = None


class PaymentIntentObject(EventModel):
    """payment_intent.* event object."""

    id: str
    amount: int | None = None
    currency: str | None = None
    metadata: PaymentIntentMetadata = Field(default_factory=PaymentIntentMetadata)
    latest_charge: str | None = None
    charges: ChargeList | None = None
    last_payment_error: PaymentErrorDetail | None = None

    @property
    def charge_id(self) -> str | None:
        if self.latest_charge:
            return self.latest_charge
        if self.charges and self.charges.data:
            return self.charges.data[0].id
        return None


class SubscriptionMetadata(EventModel):
    uid: str | None = None
    tier: str | None = None
    role: str | None = None
    currency: str | None = None


class SubscriptionObject(EventModel):
    """customer.subscription.* event object."""

    id: str
    status: str | None = None
    current_period_end: int | None = None
    metadata: SubscriptionMetadata = Field(default_factory=SubscriptionMetadata)


class CheckoutSessionObject(EventModel):
    """checkout.session.completed event object."""

    id: str
    customer: str | None = None
    metadata: SubscriptionMetadata = Field(default_factory=SubscriptionMetadata)


class WebhookAck(BaseModel):
    """Acknowledgement returned to the processor."""

    received: bool = True
    event_type: str
    handled: bool
    duplicate: bool = False
