"""Prometheus scrape endpoint for request, catalog and form metrics."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from ..core.observability import get_prometheus_metrics

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Request timings plus tour, application, subscription and client render counters",
    response_class=Response,
    tags=["Observability"]
)
async def metrics() -> Response:
    """Expose the service registry in the Prometheus text format."""
    return Response(content=get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
