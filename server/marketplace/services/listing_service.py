"""Listing creation and cancellation policy management."""

import logging
from uuid import uuid4

from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError
from ..core.store import Transaction, TransactionalStore
from ..models.account import Account, AccountRole
from ..models.listing import Listing, ListingType
from ..schemas.listing import CancellationPolicy, CreateListingRequest

logger = logging.getLogger(__name__)

# Tours are offered by guides, experiences by hosts
PROVIDER_ROLE_BY_LISTING_TYPE = {
    ListingType.TOUR.value: AccountRole.GUIDE.value,
    ListingType.EXPERIENCE.value: AccountRole.HOST.value,
}


class ListingService:
    """Service for provider-owned listings."""

    def __init__(self, store: TransactionalStore):
        self.store = store

    async def create_listing(self, caller: CurrentUser, request: CreateListingRequest) -> Listing:
        """
        Create a listing owned by the caller.

        Raises:
            NotFoundError: Caller has no account
            FailedPreconditionError: Caller's role cannot offer this listing type
        """
        listing_type = request.listing_type.value
        policy = request.cancellation_policy or CancellationPolicy()

        async def create(txn: Transaction) -> Listing:
            account = await txn.get(Account, caller.user_id)
            if account is None:
                raise NotFoundError(resource_type="account", resource_id=caller.user_id)
            if account.role != PROVIDER_ROLE_BY_LISTING_TYPE[listing_type]:
                raise FailedPreconditionError(
                    detail=f"Only {PROVIDER_ROLE_BY_LISTING_TYPE[listing_type]} accounts can offer a {listing_type}",
                    reason="ROLE_CANNOT_OFFER_LISTING",
                )

            listing = Listing(
                id=str(uuid4()),
                listing_type=listing_type,
                provider_id=account.id,
                title=request.title,
                description=request.description,
                price_amount=request.price_amount,
                currency=(request.currency or account.seller_currency or settings.default_currency).lower(),
                free_cancel_hours=policy.free_cancel_hours,
                refund_percent_after_deadline=policy.refund_percent_after_deadline,
                no_show_refund_percent=policy.no_show_refund_percent,
            )
            txn.add(listing)
            await txn.flush()
            return listing

        listing = await self.store.run_transaction(create, name="create_listing")
        logger.info(
            "Listing created",
            extra={"listing_id": listing.id, "provider_id": listing.provider_id, "listing_type": listing_type},
        )
        return listing

    async def get_listing(self, listing_id: str) -> Listing:
        async def load(txn: Transaction) -> Listing:
            listing = await txn.get(Listing, listing_id)
            if listing is None:
                raise NotFoundError(resource_type="listing", resource_id=listing_id)
            return listing

        return await self.store.run_transaction(load, name="get_listing")

    async def update_cancellation_policy(
        self,
        caller: CurrentUser,
        listing_id: str,
        policy: CancellationPolicy,
    ) -> Listing:
        """Replace a listing's cancellation policy; owner only."""

        async def update(txn: Transaction) -> Listing:
            listing = await txn.get_for_update(Listing, listing_id)
            if listing is None:
                raise NotFoundError(resource_type="listing", resource_id=listing_id)
            if listing.provider_id != caller.user_id:
                raise AuthorizationError(detail="Only the listing owner can change its policy")
            listing.free_cancel_hours = policy.free_cancel_hours
            listing.refund_percent_after_deadline = policy.refund_percent_after_deadline
            listing.no_show_refund_percent = policy.no_show_refund_percent
            await txn.flush()
            return listing

        listing = await self.store.run_transaction(update, name="update_cancellation_policy")
        logger.info(
            "Cancellation policy updated",
            extra={
                "listing_id": listing.id,
                "free_cancel_hours": listing.free_cancel_hours,
                "refund_percent_after_deadline": listing.refund_percent_after_deadline,
            },
        )
        return listing
