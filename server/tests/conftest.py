"""Test configuration and fixtures."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import marketplace.models  # noqa: F401  registers tables on Base.metadata
from marketplace.core.config import settings
from marketplace.core.database import Base, build_engine, build_session_factory
from marketplace.core.dependencies import CurrentUser, get_clock, get_gateway, get_store
from marketplace.core.store import TransactionalStore
from marketplace.models import Account, AvailabilitySlot, Listing

from .factories import create_account, create_listing, create_slot
from .fakes import FakePaymentGateway, FrozenClock

# A Monday, so week keys are easy to reason about
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so concurrent transactions use separate connections."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def store(test_engine) -> TransactionalStore:
    return TransactionalStore(build_session_factory(test_engine))


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest_asyncio.fixture(scope="function")
async def test_app(store, gateway, clock):
    """Full application with the store, gateway and clock swapped for test doubles."""
    from marketplace.main import create_app

    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Build an Authorization header carrying a signed token for ``user_id``."""

    def make(user_id: str, roles: tuple[str, ...] = (), email: str | None = None) -> dict[str, str]:
        payload = {
            "sub": user_id,
            "roles": list(roles),
            "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
        }
        if email:
            payload["email"] = email
        token = jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return make


@dataclass
class World:
    """A guide with one tour and one open slot a week out, plus a buyer and an admin."""

    guide: Account
    buyer: Account
    admin: Account
    listing: Listing
    slot: AvailabilitySlot

    guide_user = CurrentUser(user_id="guide-1")
    buyer_user = CurrentUser(user_id="buyer-1")
    admin_user = CurrentUser(user_id="admin-1")
    stranger_user = CurrentUser(user_id="stranger-1")


@pytest_asyncio.fixture
async def world(store) -> World:
    guide = await create_account(store, "guide-1", role="guide", tier="pro", payout_account_id="acct_guide")
    buyer = await create_account(store, "buyer-1")
    admin = await create_account(store, "admin-1", role="admin")
    listing = await create_listing(store, guide.id, refund_percent_after_deadline=50)
    slot = await create_slot(store, listing, NOW + timedelta(days=7))
    return World(guide=guide, buyer=buyer, admin=admin, listing=listing, slot=slot)
