"""Administrator operations."""

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import (
    ClockDependency,
    CurrentUser,
    GatewayDependency,
    RequiredAuth,
    StoreDependency,
)
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..schemas.account import SetAdminRoleRequest, SetAdminRoleResponse
from ..schemas.booking import AdminOverrideCancelRequest, CancelBookingResponse
from ..services.account_service import AccountService
from ..services.cancellation_service import CancellationService
from .common import json_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post("/override-cancel", response_model=CancelBookingResponse)
async def admin_override_cancel(
    request: AdminOverrideCancelRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """Cancel any booking with an explicit refund percentage."""
    result = await CancellationService(store, gateway).admin_override_cancel(
        user, request.booking_id, request.refund_percent, clock()
    )
    return json_response(result)


@router.post("/set-role", response_model=SetAdminRoleResponse)
async def set_admin_role(
    request: SetAdminRoleRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    account = await AccountService(store, gateway).set_admin_role(user, request.target_account_id)
    return json_response(SetAdminRoleResponse(ok=True, account_id=account.id))
