"""FastAPI dependencies for authentication, the transactional store, the clock and the payment gateway."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from ..gateways.base import PaymentGateway
from ..gateways.stripe_gateway import build_stripe_gateway
from .config import settings
from .database import async_session_factory, utcnow
from .exceptions import AuthenticationError
from .store import TransactionalStore


@dataclass(frozen=True)
class CurrentUser:
    """Verified caller identity."""

    user_id: str
    email: Optional[str] = None
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_admin_claim(self) -> bool:
        return "admin" in self.roles


def get_store() -> TransactionalStore:
    """Transactional store bound to the application session factory."""
    return TransactionalStore(async_session_factory)


def get_clock() -> Callable[[], datetime]:
    """Source of the current time; overridden in tests."""
    return utcnow


@lru_cache(maxsize=1)
def get_gateway() -> PaymentGateway:
    """Process-wide payment gateway."""
    return build_stripe_gateway()


def decode_bearer_token(token: str) -> CurrentUser:
    """
    Validate an HS256 bearer token and build the caller identity.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(detail="Invalid token payload")

    # Check token expiration
    exp = payload.get("exp")
    if exp and datetime.now(timezone.utc).timestamp() > exp:
        raise AuthenticationError(detail="Token has expired")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    if payload.get("admin") is True and "admin" not in roles:
        roles = [*roles, "admin"]

    return CurrentUser(
        user_id=str(user_id),
        email=payload.get("email"),
        roles=tuple(str(role) for role in roles),
    )


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CurrentUser:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        CurrentUser: Caller identity from the validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError as e:
        raise AuthenticationError(detail="Invalid authorization header format") from e

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    return decode_bearer_token(token)


RequiredAuth = Depends(get_current_user)
StoreDependency = Depends(get_store)
GatewayDependency = Depends(get_gateway)
ClockDependency = Depends(get_clock)
