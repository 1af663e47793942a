"""Prometheus scrape endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from ..core.observability import metrics_collector

router = APIRouter(tags=["Observability"])


@router.get("/metrics", response_class=Response, summary="Prometheus metrics")
async def metrics() -> Response:
    return Response(content=metrics_collector.render(), media_type=CONTENT_TYPE_LATEST)
