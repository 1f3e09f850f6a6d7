"""
Health checker for pipeline dependencies.

- Queue reachability
- Store writability
- Embedded worker state (when enabled)
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from .queue import QueueClient
from .store import RecordStore
from .worker import WorkerService

logger = structlog.get_logger(__name__)


@dataclass
class HealthCheck:
    """Individual health check result."""
    name: str
    status: str  # "healthy", "unhealthy"
    message: str
    details: Dict[str, Any]
    last_check: float


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    checks: Dict[str, HealthCheck]
    failed_checks: List[str]
    timestamp: float


class HealthChecker:
    """Readiness checks for the queue, the store and the worker."""

    def __init__(
        self,
        queue: QueueClient,
        store: RecordStore,
        worker: Optional[WorkerService] = None,
    ) -> None:
        self.queue = queue
        self.store = store
        self.worker = worker

    async def check_all(self) -> HealthStatus:
        """Perform all health checks and return overall status."""
        names = ["queue", "store"]
        coroutines = [self._check_queue(), self._check_store()]
        if self.worker is not None:
            names.append("worker")
            coroutines.append(self._check_worker())

        results = await asyncio.gather(*coroutines, return_exceptions=True)

        checks: Dict[str, HealthCheck] = {}
        failed_checks: List[str] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                result = HealthCheck(
                    name=name,
                    status="unhealthy",
                    message=f"Check failed: {result}",
                    details={"error": str(result), "error_type": type(result).__name__},
                    last_check=time.time(),
                )
            checks[name] = result
            if result.status != "healthy":
                failed_checks.append(name)

        if failed_checks:
            logger.warning("Health check failed", failed_checks=failed_checks)

        return HealthStatus(
            is_healthy=not failed_checks,
            checks=checks,
            failed_checks=failed_checks,
            timestamp=time.time(),
        )

    @staticmethod
    def _result(name: str, ok: bool, message: str, details: Optional[Dict[str, Any]] = None) -> HealthCheck:
        return HealthCheck(
            name=name,
            status="healthy" if ok else "unhealthy",
            message=message,
            details=details or {},
            last_check=time.time(),
        )

    async def _check_queue(self) -> HealthCheck:
        ok = await self.queue.ping()
        return self._result("queue", ok, "Queue reachable" if ok else "Queue unreachable",
                            {"backend": type(self.queue).__name__})

    async def _check_store(self) -> HealthCheck:
        ok = await self.store.check()
        return self._result("store", ok, "Store writable" if ok else "Store not writable",
                            {"backend": type(self.store).__name__})

    async def _check_worker(self) -> HealthCheck:
        assert self.worker is not None
        ok = self.worker.is_healthy()
        return self._result("worker", ok, "Worker running" if ok else "Worker not running",
                            self.worker.status())
