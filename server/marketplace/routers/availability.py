"""Availability router."""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import Field

from ..core.dependencies import ClockDependency, CurrentUser, RequiredAuth, StoreDependency
from ..core.store import TransactionalStore
from ..schemas.availability import CreateSlotRequest, SlotView
from ..schemas.common import RequestModel
from ..services.availability_service import AvailabilityService
from .common import json_response

router = APIRouter(prefix="/v1/availability", tags=["availability"])


class SlotIdRequest(RequestModel):
    slot_id: str = Field(..., min_length=1, max_length=36)


@router.post("/create", response_model=SlotView)
async def create_slot(
    request: CreateSlotRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """Publish an open slot on one of the caller's listings."""
    slot = await AvailabilityService(store).create_slot(user, request, clock())
    return json_response(SlotView.model_validate(slot))


@router.post("/close", response_model=SlotView)
async def close_slot(
    request: SlotIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
) -> JSONResponse:
    slot = await AvailabilityService(store).close_slot(user, request.slot_id)
    return json_response(SlotView.model_validate(slot))
