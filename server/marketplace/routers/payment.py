"""Payment router."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import CurrentUser, GatewayDependency, RequiredAuth, StoreDependency
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..schemas.common import BookingIdRequest
from ..schemas.payment import PaymentIntentResponse
from ..services.payment_service import PaymentService
from .common import json_response

router = APIRouter(prefix="/v1/payment", tags=["payment"])


@router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    """
    Create the payment intent for a booking.

    Repeated calls return the same intent id and client secret.
    """
    result = await PaymentService(store, gateway).create_payment_intent(user, request.booking_id)
    return json_response(result)
