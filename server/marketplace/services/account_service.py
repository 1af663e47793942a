"""Accounts, connected payout accounts and admin role management."""

import logging

from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import AuthorizationError, FailedPreconditionError, NotFoundError
from ..core.store import Transaction, TransactionalStore
from ..gateways.base import (
    BillingPortalResult,
    CheckoutSessionResult,
    OnboardingLinkResult,
    PaymentGateway,
    PayoutSummary,
)
from ..models.account import Account, AccountRole
from ..schemas.account import RegisterAccountRequest, SubscriptionCheckoutRequest
from .access import is_admin

logger = logging.getLogger(__name__)


def subscription_currency(country: str | None) -> str:
    """Romanian sellers are billed in lei, everyone else in euro."""
    return "ron" if "romania" in (country or "").lower() else "eur"


class AccountService:
    """Service for account lifecycle and seller payout setup."""

    def __init__(self, store: TransactionalStore, gateway: PaymentGateway):
        self.store = store
        self.gateway = gateway

    async def register_account(self, caller: CurrentUser, request: RegisterAccountRequest) -> Account:
        """
        Create the caller's account, or update the existing one.

        A buyer may later register as a guide or host; a seller never
        drops back to buyer, and an admin keeps the admin role.
        """
        role = request.role.value

        async def register(txn: Transaction) -> Account:
            account = await txn.get_for_update(Account, caller.user_id)
            if account is None:
                account = Account(
                    id=caller.user_id,
                    role=role,
                    email=request.email or caller.email,
                    country=request.country,
                )
                txn.add(account)
                await txn.flush()
                return account
            if account.role == AccountRole.BUYER.value:
                account.role = role
            if request.email:
                account.email = request.email
            if request.country:
                account.country = request.country
            await txn.flush()
            return account

        account = await self.store.run_transaction(register, name="register_account")
        logger.info("Account registered", extra={"account_id": account.id, "role": account.role})
        return account

    async def get_account(self, caller: CurrentUser) -> Account:
        async def load(txn: Transaction) -> Account:
            account = await txn.get(Account, caller.user_id)
            if account is None:
                raise NotFoundError(resource_type="account", resource_id=caller.user_id)
            return account

        return await self.store.run_transaction(load, name="get_account")

    async def connect_payout_account(self, caller: CurrentUser) -> tuple[str, OnboardingLinkResult]:
        """
        Ensure the seller has a connected account and return an onboarding link.

        The connected account is created once; later calls only mint a
        fresh onboarding link for it.

        Raises:
            NotFoundError: Caller has no account
            FailedPreconditionError: Caller is not a guide or host
        """

        async def load(txn: Transaction) -> Account:
            account = await txn.get(Account, caller.user_id)
            if account is None:
                raise NotFoundError(resource_type="account", resource_id=caller.user_id)
            if not account.is_seller:
                raise FailedPreconditionError(
                    detail="Only guides and hosts can connect a payout account",
                    reason="NOT_A_SELLER",
                )
            return account

        account = await self.store.run_transaction(load, name="load_seller")
        payout_account_id = account.payout_account_id

        if not payout_account_id:
            created = await self.gateway.create_connected_account(
                email=account.email or caller.email,
                metadata={"uid": account.id, "role": account.role},
                idempotency_key=f"connect_account:{account.id}",
            )

            async def store_account(txn: Transaction) -> str:
                stored = await txn.compare_and_set(
                    Account,
                    account.id,
                    expected={"payout_account_id": None},
                    values={"payout_account_id": created.id},
                )
                if stored:
                    return created.id
                current = await txn.get(Account, account.id)
                return current.payout_account_id

            payout_account_id = await self.store.run_transaction(store_account, name="store_payout_account")
            logger.info(
                "Connected payout account created",
                extra={"account_id": account.id, "payout_account_id": payout_account_id},
            )

        base_url = settings.app_base_url.rstrip("/")
        link = await self.gateway.create_onboarding_link(
            account_id=payout_account_id,
            refresh_url=f"{base_url}/connect-refresh",
            return_url=f"{base_url}/connect-return",
        )
        return payout_account_id, link

    async def set_admin_role(self, caller: CurrentUser, target_account_id: str) -> Account:
        """Grant the admin role to an account, creating it if needed; admin only."""

        async def grant(txn: Transaction) -> Account:
            if not await is_admin(txn, caller):
                raise AuthorizationError(detail="Admin role required")
            account = await txn.get_for_update(Account, target_account_id)
            if account is None:
                account = Account(id=target_account_id, role=AccountRole.ADMIN.value)
                txn.add(account)
            else:
                account.role = AccountRole.ADMIN.value
            await txn.flush()
            return account

        account = await self.store.run_transaction(grant, name="set_admin_role")
        logger.info("Admin role granted", extra={"account_id": account.id, "granted_by": caller.user_id})
        return account

    async def list_payouts(self, caller: CurrentUser, limit: int) -> list[PayoutSummary]:
        """List recent payouts on the caller's connected account."""
        account = await self.get_account(caller)
        if not account.payout_account_id:
            raise FailedPreconditionError(
                detail="No payout account connected",
                reason="SELLER_NOT_CONNECTED",
            )
        return await self.gateway.list_payouts(account.payout_account_id, limit)

    async def _ensure_customer(self, account: Account, email: str | None) -> str:
        """Return the account's billing customer, creating it on first use."""
        if account.stripe_customer_id:
            return account.stripe_customer_id

        created = await self.gateway.create_customer(
            email=account.email or email,
            metadata={"uid": account.id},
            idempotency_key=f"customer:{account.id}",
        )

        async def store_customer(txn: Transaction) -> str:
            stored = await txn.compare_and_set(
                Account,
                account.id,
                expected={"stripe_customer_id": None},
                values={"stripe_customer_id": created.id},
            )
            if stored:
                return created.id
            current = await txn.get(Account, account.id)
            return current.stripe_customer_id

        customer_id = await self.store.run_transaction(store_customer, name="store_billing_customer")
        logger.info("Billing customer created", extra={"account_id": account.id, "customer_id": customer_id})
        return customer_id

    async def create_subscription_checkout(
        self, caller: CurrentUser, request: SubscriptionCheckoutRequest
    ) -> tuple[str, CheckoutSessionResult]:
        """
        Open a hosted checkout for a paid seller plan.

        The tier and role picked here travel as subscription metadata and
        are applied to the account when the processor reports the
        subscription; nothing changes on the account until then.

        Returns:
            The billing currency and the checkout session

        Raises:
            NotFoundError: Caller has no account
            FailedPreconditionError: No price is configured for the plan
        """
        account = await self.get_account(caller)
        role = request.role.value
        tier = request.tier.value
        currency = subscription_currency(account.country)

        price_id = settings.subscription_price_id(role, tier, currency)
        if not price_id:
            raise FailedPreconditionError(
                detail=f"No price configured for {role} {tier} in {currency}",
                reason="PRICE_NOT_CONFIGURED",
            )

        customer_id = await self._ensure_customer(account, caller.email)
        base_url = settings.app_base_url.rstrip("/")
        session = await self.gateway.create_subscription_checkout(
            customer_id=customer_id,
            price_id=price_id,
            success_url=f"{base_url}/seller-subscription-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/seller-subscription-cancel",
            metadata={"uid": account.id, "role": role, "tier": tier, "currency": currency},
        )
        logger.info(
            "Subscription checkout created",
            extra={"account_id": account.id, "tier": tier, "role": role, "session_id": session.id},
        )
        return currency, session

    async def create_billing_portal(self, caller: CurrentUser) -> BillingPortalResult:
        """Open the processor's billing portal for a subscribed account."""
        account = await self.get_account(caller)
        if not account.stripe_customer_id:
            raise FailedPreconditionError(
                detail="Subscribe to a seller plan first",
                reason="NO_BILLING_CUSTOMER",
            )
        base_url = settings.app_base_url.rstrip("/")
        return await self.gateway.create_billing_portal_session(
            customer_id=account.stripe_customer_id,
            return_url=f"{base_url}/app",
        )
