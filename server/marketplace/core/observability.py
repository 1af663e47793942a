"""
Logging, tracing and metrics wiring.

Logs go through structlog as JSON (console rendering in development)
carrying the request id bound by the request context middleware and the
active OpenTelemetry span. Prometheus counters live on a private registry
served at /metrics; OTLP export of spans and OTel metrics is enabled only
when an endpoint is configured.
"""

import logging
from typing import Optional

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "guide-marketplace-api"
SERVICE_VERSION = "1.0.0"


def _add_span_ids(logger, method_name, event_dict):
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict.setdefault("otel_trace_id", format(ctx.trace_id, "032x"))
        event_dict.setdefault("otel_span_id", format(ctx.span_id, "016x"))
    return event_dict


def setup_structured_logging() -> None:
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_span_ids,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource(service_name: str) -> Resource:
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": SERVICE_VERSION,
            "deployment.environment": settings.environment,
        }
    )


def setup_tracing(service_name: str = SERVICE_NAME) -> trace.Tracer:
    provider = TracerProvider(resource=_resource(service_name))
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(service_name)


def setup_metrics(service_name: str = SERVICE_NAME) -> Optional[metrics.Meter]:
    """Export OTel metrics over OTLP; without an endpoint only Prometheus is served."""
    if not settings.otlp_endpoint:
        return None
    reader = PeriodicExportingMetricReader(
        exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
        export_interval_millis=60000,
    )
    metrics.set_meter_provider(MeterProvider(resource=_resource(service_name), metric_readers=[reader]))
    return metrics.get_meter(service_name)


def instrument_fastapi(app) -> None:
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


def instrument_sqlalchemy(engine) -> None:
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MarketplaceMetrics:
    """
    Prometheus counters for the booking lifecycle.

    Outcome labels are small fixed sets (``created``/``reused``,
    ``paid``/``failed`` ...) so the series count stays bounded.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.requests = Counter(
            "http_requests_total", "HTTP requests", ["method", "endpoint", "status_code"], registry=self.registry
        )
        self.request_duration = Histogram(
            "http_request_duration_seconds", "HTTP request latency", ["method", "endpoint"], registry=self.registry
        )
        self.slots_reserved = Counter(
            "marketplace_slots_reserved_total", "Bookings created by reserving a slot", ["listing_type"],
            registry=self.registry,
        )
        self.reservation_conflicts = Counter(
            "marketplace_reservation_conflicts_total", "Reservations that lost the race for a slot",
            registry=self.registry,
        )
        self.payment_intents = Counter(
            "marketplace_payment_intents_total", "Payment intent requests", ["outcome"], registry=self.registry
        )
        self.webhook_events = Counter(
            "marketplace_webhook_events_total", "Processor events received", ["event_type", "outcome"],
            registry=self.registry,
        )
        self.cancellations = Counter(
            "marketplace_cancellations_total", "Booking cancellations", ["kind"], registry=self.registry
        )
        self.refunds = Counter("marketplace_refunds_total", "Refund attempts", ["outcome"], registry=self.registry)
        self.payouts = Counter("marketplace_payouts_total", "Payout attempts", ["outcome"], registry=self.registry)
        self.reviews = Counter(
            "marketplace_reviews_added_total", "Reviews accepted", ["listing_type"], registry=self.registry
        )

    def record_request(self, method: str, endpoint: str, status_code: int, duration_seconds: float) -> None:
        self.requests.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    def record_slot_reserved(self, listing_type: str) -> None:
        self.slots_reserved.labels(listing_type=listing_type).inc()

    def record_reservation_conflict(self) -> None:
        self.reservation_conflicts.inc()

    def record_payment_intent(self, outcome: str) -> None:
        self.payment_intents.labels(outcome=outcome).inc()

    def record_webhook_event(self, event_type: str, outcome: str) -> None:
        self.webhook_events.labels(event_type=event_type, outcome=outcome).inc()

    def record_cancellation(self, kind: str) -> None:
        self.cancellations.labels(kind=kind).inc()

    def record_refund(self, outcome: str) -> None:
        self.refunds.labels(outcome=outcome).inc()

    def record_payout(self, outcome: str) -> None:
        self.payouts.labels(outcome=outcome).inc()

    def record_review_added(self, listing_type: str) -> None:
        self.reviews.labels(listing_type=listing_type).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)


metrics_collector = MarketplaceMetrics()
