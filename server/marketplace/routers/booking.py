"""Booking router: reservation, lookup, confirmation and cancellation."""

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
from ..schemas.booking import (
    BookingView,
    CancelBookingResponse,
    ConfirmBookingResponse,
    ReserveSlotRequest,
    ReserveSlotResponse,
)
from ..schemas.common import BookingIdRequest
from ..services.booking_service import BookingService
from ..services.cancellation_service import CancellationService
from ..services.reservation_service import ReservationService
from .common import json_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


@router.post("/reserve", response_model=ReserveSlotResponse)
async def reserve_slot(
    request: ReserveSlotRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """
    Reserve an availability slot and create a booking for it.

    Exactly one of any number of concurrent reservations of the same
    slot succeeds; the others receive FAILED_PRECONDITION.
    """
    booking = await ReservationService(store).reserve_slot_and_create_booking(user, request, clock())
    return json_response(ReserveSlotResponse(booking_id=booking.id))


@router.post("/get", response_model=BookingView)
async def get_booking(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
) -> JSONResponse:
    booking = await BookingService(store).get_booking(user, request.booking_id)
    return json_response(BookingView.model_validate(booking))


@router.post("/confirm", response_model=ConfirmBookingResponse)
async def confirm_booking(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """Provider confirmation of a paid booking."""
    booking = await BookingService(store).confirm_booking(user, request.booking_id, clock())
    return json_response(ConfirmBookingResponse(booking_id=booking.id, status=booking.status))


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    request: BookingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """
    Cancel a booking.

    Refunds follow the listing's cancellation policy. Calling this again
    after a failed refund retries the refund only.
    """
    result = await CancellationService(store, gateway).cancel_booking(user, request.booking_id, clock())
    return json_response(result)
