"""
Main FastAPI application entry point.

This module sets up the FastAPI app with middleware, routes, exception
handlers and the lifespan that owns the shared pipeline context.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import healthz_router, logs_router, metrics_router
from .config import Settings, get_settings
from .context import PipelineContext, build_context
from .core.exceptions import ConfigurationError, TenantLogException
from .core.health import HealthChecker
from .core.worker import WorkerService


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Silence the verbose per-request access logger
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings, context: Optional[PipelineContext]) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Builds the shared pipeline context once per process and, when
        enabled, runs the batch worker alongside the API.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting TenantLog service", version=app.version)

        pipeline = context if context is not None else build_context(settings)
        await pipeline.start()
        app.state.context = pipeline

        worker: Optional[WorkerService] = None
        if settings.worker.enabled:
            worker = WorkerService(
                pipeline.queue,
                pipeline.batch_processor(),
                batch_size=settings.worker.batch_size,
                wait_seconds=settings.queue.wait_seconds,
                idle_sleep_seconds=settings.worker.idle_sleep_seconds,
            )
            await worker.start()
        app.state.worker = worker

        app.state.health_checker = HealthChecker(pipeline.queue, pipeline.store, worker)

        try:
            logger.info("TenantLog service started successfully", worker_enabled=worker is not None)
            yield
        finally:
            logger.info("Shutting down TenantLog service")

            if worker is not None:
                await worker.stop()
            await pipeline.close()

            logger.info("TenantLog service shutdown complete")

    return lifespan


async def tenantlog_exception_handler(request: Request, exc: TenantLogException) -> JSONResponse:
    """Handle custom TenantLog exceptions."""
    logger = structlog.get_logger(__name__)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "TenantLog exception occurred",
        error=str(exc),
        error_code=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.reason},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[PipelineContext] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Explicit settings; loaded from env/config file when omitted
        context: Prebuilt pipeline context (tests inject fakes here)

    Raises:
        ConfigurationError: required configuration is missing
    """
    if settings is None:
        settings = context.settings if context is not None else get_settings()

    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="TenantLog",
        description="Multi-tenant log ingestion with asynchronous PII redaction",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings, context),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TenantLogException, tenantlog_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(logs_router, prefix="/v1", tags=["logs"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "TenantLog",
            "version": app.version,
            "description": "Multi-tenant log ingestion with asynchronous PII redaction",
            "docs": "/docs",
        }

    return app


def main() -> None:
    """Console entry point for the API server."""
    import uvicorn

    try:
        settings = get_settings()
    except ConfigurationError as e:
        configure_logging()
        structlog.get_logger(__name__).error("Startup failed", error=str(e), details=e.details)
        raise SystemExit(1) from e

    uvicorn.run(
        "tenantlog.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
