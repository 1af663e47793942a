"""Liveness, readiness and service info probes."""

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import settings
from ..core.dependencies import ClockDependency, StoreDependency
from ..core.observability import SERVICE_NAME, SERVICE_VERSION
from ..core.store import TransactionalStore
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["Health"])
probe_router = APIRouter(tags=["Health"])


async def database_state(store: TransactionalStore) -> str:
    try:
        await store.ping()
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database did not answer the health check", extra={"error": str(e)})
        return "unavailable"
    return "ok"


@router.post("/ping", response_model=HealthResponse)
async def health_ping(
    store: TransactionalStore = StoreDependency,
    clock: Callable[[], datetime] = ClockDependency,
) -> HealthResponse:
    """
    Health check endpoint.

    Always answers 200 while the process is up; ``status`` drops to
    degraded when the database does not respond.
    """
    database = await database_state(store)
    return HealthResponse(
        status=HealthStatus.HEALTHY if database == "ok" else HealthStatus.DEGRADED,
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        database=database,
        timestamp=clock(),
    )


@probe_router.get("/health", summary="Liveness probe")
async def health_check() -> dict:
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
    }


@probe_router.get("/ready", summary="Readiness probe")
async def readiness_check(request: Request, store: TransactionalStore = StoreDependency) -> JSONResponse:
    """503 until the database answers; worker status is informational."""
    database = await database_state(store)
    manager = getattr(request.app.state, "worker_manager", None)
    return JSONResponse(
        status_code=200 if database == "ok" else 503,
        content={
            "status": "ready" if database == "ok" else "not_ready",
            "service": SERVICE_NAME,
            "checks": {
                "database": database,
                "workers": manager.get_worker_status() if manager else {},
            },
        },
    )


@probe_router.get("/info", summary="Service information")
async def service_info() -> dict:
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "features": {
            "payments": settings.payments_enabled,
            "webhooks": bool(settings.stripe_webhook_secret),
            "payout_worker": settings.payments_enabled,
            "tracing": bool(settings.otlp_endpoint),
        },
        "endpoints": {
            "health": "/health",
            "readiness": "/ready",
            "metrics": "/metrics",
            "docs": "/docs" if settings.debug else None,
        },
    }
