"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - logs_accepted_total{source} - Submissions queued
    - logs_rejected_total{reason} - Submissions rejected at ingest
    - enqueue_failures_total - Queue faults on ingest
    - messages_processed_total{outcome} - Worker outcomes
    - redactions_total{pattern} - PII substitutions
    - processing_duration_seconds - Per-message latency histogram
    """,
)
async def get_metrics(request: Request) -> Response:
    """Return metrics in Prometheus text format."""
    context = getattr(request.app.state, "context", None)

    if context is None:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    context.metrics.update_system_metrics()
    metrics_data = generate_latest(context.metrics.registry)
    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
