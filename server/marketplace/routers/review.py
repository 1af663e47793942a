"""Review router."""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import ClockDependency, CurrentUser, RequiredAuth, StoreDependency
from ..core.store import TransactionalStore
from ..schemas.review import AddReviewRequest, AddReviewResponse
from ..services.review_service import ReviewService
from .common import json_response

router = APIRouter(prefix="/v1/review", tags=["review"])


@router.post("/add", response_model=AddReviewResponse)
async def add_review(
    request: AddReviewRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> JSONResponse:
    """Review a finished booking; one review per booking."""
    review = await ReviewService(store).add_review(
        user, request.booking_id, request.rating, request.comment, clock()
    )
    return json_response(AddReviewResponse(review_id=review.id))
