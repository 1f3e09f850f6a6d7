"""
Prometheus metrics collection.

In-memory counters; Prometheus handles storage. Collectors are bound to
an injectable registry so several app instances (tests) can coexist.
"""

import time
from typing import Dict, Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for TenantLog.

    Labels never include tenant ids or log text.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else REGISTRY

        # Service info
        self.service_info = Info(
            "tenantlog_service",
            "TenantLog service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "tenantlog",
        })

        # Ingest metrics
        self.logs_accepted_total = Counter(
            "logs_accepted_total",
            "Total log submissions accepted and queued",
            ["source"],
            registry=self.registry,
        )

        self.logs_rejected_total = Counter(
            "logs_rejected_total",
            "Total log submissions rejected at ingest",
            ["reason"],
            registry=self.registry,
        )

        self.enqueue_failures_total = Counter(
            "enqueue_failures_total",
            "Total submissions that could not be queued",
            registry=self.registry,
        )

        # Worker metrics
        self.messages_processed_total = Counter(
            "messages_processed_total",
            "Total queue messages processed",
            ["outcome"],
            registry=self.registry,
        )

        self.redactions_total = Counter(
            "redactions_total",
            "Total PII substitutions",
            ["pattern"],
            registry=self.registry,
        )

        self.processing_duration = Histogram(
            "processing_duration_seconds",
            "Per-message processing duration in seconds",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.batch_size_messages = Histogram(
            "batch_size_messages",
            "Number of messages per delivered batch",
            buckets=[1, 2, 5, 10],
            registry=self.registry,
        )

        # System metrics
        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_accepted(self, source: str) -> None:
        self.logs_accepted_total.labels(source=source).inc()

    def record_rejected(self, reason: str) -> None:
        self.logs_rejected_total.labels(reason=reason).inc()

    def record_enqueue_failure(self) -> None:
        self.enqueue_failures_total.inc()

    def record_message(self, succeeded: bool, duration_seconds: float) -> None:
        """Record one processed message."""
        outcome = "succeeded" if succeeded else "failed"
        self.messages_processed_total.labels(outcome=outcome).inc()
        self.processing_duration.observe(duration_seconds)

    def record_redactions(self, counts: Dict[str, int]) -> None:
        for pattern, count in counts.items():
            if count:
                self.redactions_total.labels(pattern=pattern).inc(count)

    def record_batch(self, size: int) -> None:
        self.batch_size_messages.observe(size)

    def update_system_metrics(self) -> None:
        self.uptime_seconds.set(time.time() - self._start_time)
