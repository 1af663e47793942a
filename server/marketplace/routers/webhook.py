"""Payment processor webhook endpoint."""

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from ..core.dependencies import ClockDependency, GatewayDependency, StoreDependency
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..services.webhook_service import WebhookService

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = Header(None, alias="Stripe-Signature")


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = SIGNATURE_HEADER,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """
    Receive a signed event from Stripe.

    The raw body is verified before parsing. Duplicate deliveries and
    unhandled event types are acknowledged with 200 so the processor
    stops retrying them.
    """
    payload = await request.body()
    ack = await WebhookService(store, gateway).handle_event(payload, stripe_signature, clock())
    return JSONResponse(status_code=200, content=ack.model_dump())
