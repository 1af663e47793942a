"""Account router: registration and seller onboarding and billing."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import CurrentUser, GatewayDependency, RequiredAuth, StoreDependency
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..schemas.account import (
    AccountView,
    BillingPortalResponse,
    ConnectPayoutAccountResponse,
    RegisterAccountRequest,
    SubscriptionCheckoutRequest,
    SubscriptionCheckoutResponse,
)
from ..services.account_service import AccountService
from .common import json_response

router = APIRouter(prefix="/v1/account", tags=["account"])


@router.post("/register", response_model=AccountView)
async def register_account(
    request: RegisterAccountRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    """Create or update the caller's account as a buyer, guide or host."""
    account = await AccountService(store, gateway).register_account(user, request)
    return json_response(AccountView.model_validate(account))


@router.post("/me", response_model=AccountView)
async def get_my_account(
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    account = await AccountService(store, gateway).get_account(user)
    return json_response(AccountView.model_validate(account))


@router.post("/connect-payout", response_model=ConnectPayoutAccountResponse)
async def connect_payout_account(
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    """
    Start or resume payout onboarding.

    Creates the seller's connected account on first use and returns a
    fresh onboarding link every time.
    """
    payout_account_id, link = await AccountService(store, gateway).connect_payout_account(user)
    return json_response(ConnectPayoutAccountResponse(url=link.url, payout_account_id=payout_account_id))


@router.post("/subscription-checkout", response_model=SubscriptionCheckoutResponse)
async def create_subscription_checkout(
    request: SubscriptionCheckoutRequest,
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    """Open a hosted checkout for the pro or elite seller plan."""
    currency, session = await AccountService(store, gateway).create_subscription_checkout(user, request)
    return json_response(SubscriptionCheckoutResponse(url=session.url, currency=currency, session_id=session.id))


@router.post("/billing-portal", response_model=BillingPortalResponse)
async def create_billing_portal(
    user: CurrentUser = RequiredAuth,
    store: TransactionalStore = StoreDependency,
    gateway: PaymentGateway = GatewayDependency,
) -> JSONResponse:
    portal = await AccountService(store, gateway).create_billing_portal(user)
    return json_response(BillingPortalResponse(url=portal.url))
