"""Request context, W3C trace propagation and access logging."""

import re
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import metrics_collector

access_logger = structlog.get_logger("marketplace.access")

TRACEPARENT_PATTERN = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")

REQUEST_ID_HEADER = "X-Request-ID"


def parse_traceparent(traceparent: str) -> Optional[dict]:
    """
    Parse a W3C traceparent header.

    Returns None for malformed values, unknown versions and the all-zero
    trace or parent ids that W3C reserves as invalid.

    https://www.w3.org/TR/trace-context/
    """
    match = TRACEPARENT_PATTERN.match(traceparent)
    if not match:
        return None

    version, trace_id, parent_id, flags = match.groups()
    if version != "00" or trace_id == "0" * 32 or parent_id == "0" * 16:
        return None

    return {"trace_id": trace_id, "parent_id": parent_id, "flags": flags}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request id and a trace position to every request.

    The request id comes from X-Request-ID when the caller sent one. An
    incoming traceparent is continued with a fresh span id; otherwise a
    new trace starts. Both are bound into structlog's context for the
    lifetime of the request and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        tracestate = request.headers.get("tracestate")
        incoming = request.headers.get("traceparent")
        parent = parse_traceparent(incoming) if incoming else None

        trace_id = parent["trace_id"] if parent else uuid.uuid4().hex
        flags = parent["flags"] if parent else "01"
        span_id = uuid.uuid4().hex[:16]

        request.state.request_id = request_id
        request.state.trace_context = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": parent["parent_id"] if parent else None,
        }

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, trace_id=trace_id, span_id=span_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-{flags}"
        if tracestate:
            response.headers["tracestate"] = tracestate
        return response


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One structured log line and one metrics sample per request.

    Bodies are never read here: the webhook handler needs the raw bytes
    to verify the processor signature.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[frozenset] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or frozenset({"/health", "/metrics", "/favicon.ico"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - started

        # Label by route template so booking ids do not explode cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", path)
        metrics_collector.record_request(request.method, endpoint, response.status_code, duration)

        fields = {
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
            "client_ip": client_ip(request),
        }
        if response.status_code >= 500:
            access_logger.error("request_failed", **fields)
        elif response.status_code >= 400:
            access_logger.warning("request_rejected", **fields)
        else:
            access_logger.info("request_completed", **fields)
        return response


def setup_middleware(app: FastAPI, enable_access_log: bool = True) -> None:
    """Install the middleware stack; the context middleware runs outermost."""
    if enable_access_log:
        app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestContextMiddleware)
