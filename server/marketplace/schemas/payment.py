"""Payment-related Pydantic schemas."""

from .common import ApiModel


class PaymentIntentResponse(ApiModel):
    """Payment intent handed to the client checkout."""

    payment_intent_id: str
    client_secret: str
    amount: int
    currency: str
    commission_percent: int
    application_fee_amount: int
    seller_net_amount: int
