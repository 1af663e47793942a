"""Payout router."""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.config import settings
from ..core.dependencies import (
    ClockDependency,
    CurrentUser,
    GatewayDependency,
    RequiredAuth,
    StoreDependency,
)
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..schemas.common import BookingIdRequest
from ..schemas.payout import ListPayoutsRequest, ListPayoutsResponse, PayoutItem, RequestPayoutResponse
from ..services.account_service import AccountService
from ..services.payout_service import PayoutService
from .common import json_response

router = APIRouter(prefix="/v1/payout", tags=["payout"])


@router.post("/request", response_model=RequestPayoutResponse)
async def request_payout(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """Pay out a finished booking now instead of waiting for the scheduler."""
    service = PayoutService(store, gateway, stale_claim_minutes=settings.payout_stale_claim_minutes)
    result = await service.request_payout_after_completion(user, request.booking_id, clock())
    return json_response(result)


@router.post("/list", response_model=ListPayoutsResponse)
async def list_payouts(
    request: ListPayoutsRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    payouts = await AccountService(store, gateway).list_payouts(user, request.limit)
    return json_response(
        ListPayoutsResponse(
            payouts=[
                PayoutItem(
                    id=p.id,
                    amount=p.amount,
                    currency=p.currency,
                    arrival_date=p.arrival_date,
                    status=p.status,
                )
                for p in payouts
            ]
        )
    )
