"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /v1/logs - Log submission
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
"""
from .healthz import router as healthz_router
from .logs import router as logs_router
from .metrics import router as metrics_router

__all__ = ["healthz_router", "logs_router", "metrics_router"]
