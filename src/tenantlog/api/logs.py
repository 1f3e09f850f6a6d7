"""
Log ingestion API endpoint.

Main endpoint: POST /v1/logs
"""

import structlog
from fastapi import APIRouter, Depends, Request

from ..context import PipelineContext
from ..core.exceptions import TenantLogException, ValidationError
from ..core.normalizer import normalize_request
from ..models.log_event import AcceptedResponse, ErrorResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


async def get_pipeline_context(request: Request) -> PipelineContext:
    """Dependency to get the shared pipeline context from app state."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise TenantLogException("Pipeline context not initialized")
    return context


@router.post(
    "/logs",
    response_model=AcceptedResponse,
    status_code=202,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Submit a log",
    description="""
    Submit one log for asynchronous processing.

    **Accepted payloads:**
    - `application/json`: `{"tenant_id": str, "text": str, "log_id"?: str}`
    - `text/plain`: raw log body, tenant in the `X-Tenant-ID` header

    A 202 response means the log is queued, not processed. PII redaction
    and storage happen in the worker.
    """,
)
async def ingest_log(
    request: Request,
    context: PipelineContext = Depends(get_pipeline_context),
) -> AcceptedResponse:
    """Normalize and queue a log submission."""
    body = await request.body()

    try:
        event = normalize_request(body, request.headers)
    except ValidationError as e:
        logger.info(
            "Log submission rejected",
            reason=str(e),
            error_code=e.error_code,
            body_bytes=len(body),
        )
        context.metrics.record_rejected(e.error_code)
        raise

    return await context.enqueuer().enqueue(event)
