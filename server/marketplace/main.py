"""Application factory and process lifecycle."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.dependencies import get_gateway
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    account_router,
    admin_router,
    availability_router,
    booking_router,
    health_router,
    listing_router,
    metrics_router,
    payment_router,
    payout_router,
    probe_router,
    review_router,
    webhook_router,
)
from .workers.manager import WorkerManager
from .workers.payout_worker import PayoutWorker
from .workers.refund_worker import RefundRetryWorker

setup_structured_logging()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

logger = logging.getLogger(__name__)

API_ROUTERS = (
    health_router,
    account_router,
    listing_router,
    availability_router,
    booking_router,
    payment_router,
    payout_router,
    review_router,
    admin_router,
    webhook_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Start tracing, create tables and run the payout and refund retry
    workers for the life of the process. Without a processor key the API
    still serves reads and reservations but runs no background payments.
    """
    logger.info("Starting %s", SERVICE_NAME, extra={"environment": settings.environment})

    setup_tracing(SERVICE_NAME)
    setup_metrics(SERVICE_NAME)
    instrument_sqlalchemy(engine)
    await init_db()

    workers = []
    if settings.payments_enabled:
        gateway = get_gateway()
        workers = [PayoutWorker(gateway), RefundRetryWorker(gateway)]
    else:
        logger.warning("STRIPE_SECRET_KEY is not set; payout and refund workers disabled")
    app.state.worker_manager = WorkerManager(workers)
    await app.state.worker_manager.start_all()

    try:
        yield
    finally:
        await app.state.worker_manager.stop_all()
        await close_db()
        logger.info("Shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Guide Marketplace API",
        description=(
            "Transactional core of a tours and experiences marketplace: slot reservation, "
            "payments with platform commission, cancellations with refunds, seller payouts and reviews"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "traceparent", "tracestate"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )
    setup_middleware(app)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(probe_router)
    app.include_router(metrics_router)
    for router in API_ROUTERS:
        app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketplace.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
