"""
Process-wide pipeline context.

Queue client, record store and metrics are built once at startup and
passed explicitly to the ingest routes and the worker. Nothing in the
context is mutated per request.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry

from .config import Settings
from .core.batch import BatchProcessor
from .core.enqueuer import Enqueuer
from .core.metrics import MetricsCollector
from .core.processing import CostFunction, LinearCost, MessageProcessor
from .core.queue import QueueClient, create_queue_client
from .core.redaction import Redactor
from .core.store import RecordStore, RecordWriter, create_record_store

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PipelineContext:
    """Shared clients for one process."""
    settings: Settings
    queue: QueueClient
    store: RecordStore
    metrics: MetricsCollector
    redactor: Redactor
    cost_function: CostFunction

    async def start(self) -> None:
        await self.queue.start()
        logger.info("Pipeline context started")

    async def close(self) -> None:
        await self.queue.close()
        logger.info("Pipeline context closed")

    def enqueuer(self) -> Enqueuer:
        return Enqueuer(self.queue, metrics=self.metrics)

    def batch_processor(self) -> BatchProcessor:
        processor = MessageProcessor(
            writer=RecordWriter(self.store),
            cost_function=self.cost_function,
            redactor=self.redactor,
            metrics=self.metrics,
        )
        return BatchProcessor(
            processor,
            max_concurrency=self.settings.worker.max_concurrency,
            metrics=self.metrics,
        )


def build_context(
    settings: Settings,
    queue: Optional[QueueClient] = None,
    store: Optional[RecordStore] = None,
    registry: Optional[CollectorRegistry] = None,
    cost_function: Optional[CostFunction] = None,
) -> PipelineContext:
    """
    Build the context from settings.

    Explicit ``queue``/``store``/``cost_function`` override the configured
    ones (tests pass fakes here).
    """
    context = PipelineContext(
        settings=settings,
        queue=queue if queue is not None else create_queue_client(settings.queue),
        store=store if store is not None else create_record_store(settings.store),
        metrics=MetricsCollector(registry=registry),
        redactor=Redactor(),
        cost_function=cost_function if cost_function is not None else LinearCost.from_settings(settings.processing),
    )
    logger.info(
        "Pipeline context built",
        queue=type(context.queue).__name__,
        store=type(context.store).__name__,
        table=settings.store.table,
    )
    return context
