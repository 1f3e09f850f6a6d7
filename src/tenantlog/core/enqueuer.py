"""
Enqueuer: hands a validated LogEvent to the queue.

Acceptance means "durably queued", never "processed".
"""

import asyncio
from typing import Optional

import structlog

from ..models.log_event import AcceptedResponse, LogEvent
from .exceptions import EnqueueError
from .metrics import MetricsCollector
from .queue import QueueClient

logger = structlog.get_logger(__name__)


class Enqueuer:
    """Serializes events and sends each exactly once per call."""

    def __init__(self, queue: QueueClient, metrics: Optional[MetricsCollector] = None) -> None:
        self.queue = queue
        self.metrics = metrics

    async def enqueue(self, event: LogEvent) -> AcceptedResponse:
        """
        Queue ``event`` for processing.

        Raises:
            EnqueueError: the queue rejected the message or is unreachable
        """
        try:
            message_id = await self.queue.send(event.to_message_body())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Failed to enqueue message",
                tenant_id=event.tenant_id,
                log_id=event.log_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self.metrics:
                self.metrics.record_enqueue_failure()
            raise EnqueueError(details={"log_id": event.log_id}) from e

        logger.info(
            "Log event queued",
            tenant_id=event.tenant_id,
            log_id=event.log_id,
            source=event.source.value,
            message_id=message_id,
        )
        if self.metrics:
            self.metrics.record_accepted(event.source.value)

        return AcceptedResponse(log_id=event.log_id, tenant_id=event.tenant_id)
