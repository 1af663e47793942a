"""Listing router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import Field

from ..core.dependencies import CurrentUser, RequiredAuth, StoreDependency
from ..core.store import TransactionalStore
from ..schemas.common import RequestModel
from ..schemas.listing import CreateListingRequest, ListingView, UpdateCancellationPolicyRequest
from ..services.listing_service import ListingService
from .common import json_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/listing", tags=["listing"])


class ListingIdRequest(RequestModel):
    listing_id: str = Field(..., min_length=1, max_length=36)


@router.post("/create", response_model=ListingView)
async def create_listing(
    request: CreateListingRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
) -> JSONResponse:
    """Create a tour (guides) or experience (hosts) owned by the caller."""
    listing = await ListingService(store).create_listing(user, request)
    return json_response(ListingView.model_validate(listing))


@router.post("/get", response_model=ListingView)
async def get_listing(
    request: ListingIdRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
) -> JSONResponse:
    listing = await ListingService(store).get_listing(request.listing_id)
    return json_response(ListingView.model_validate(listing))


@router.post("/cancellation-policy", response_model=ListingView)
async def update_cancellation_policy(
    request: UpdateCancellationPolicyRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
) -> JSONResponse:
    """Replace the cancellation policy of one of the caller's listings."""
    listing = await ListingService(store).update_cancellation_policy(
        user, request.listing_id, request.cancellation_policy
    )
    return json_response(ListingView.model_validate(listing))
