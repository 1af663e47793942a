"""FastAPI routers package."""

from .account import router as account_router
from .admin import router as admin_router
from .availability import router as availability_router
from .booking import router as booking_router
from .health import probe_router
from .health import router as health_router
from .listing import router as listing_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .payout import router as payout_router
from .review import router as review_router
from .webhook import router as webhook_router

__all__ = [
    "account_router",
    "admin_router",
    "availability_router",
    "booking_router",
    "health_router",
    "listing_router",
    "metrics_router",
    "probe_router",
    "payment_router",
    "payout_router",
    "review_router",
    "webhook_router",
]
