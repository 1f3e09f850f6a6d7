"""
Batch processor with partial-failure reporting.

Each delivered message yields exactly one MessageOutcome. The batch result
is a fold over those outcomes; the queue redelivers only the failed ids.
One message failing never fails, cancels or re-processes its siblings.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from .metrics import MetricsCollector
from .processing import MessageProcessor
from .queue import QueueMessage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MessageOutcome:
    """Result of processing one message."""
    message_id: str
    succeeded: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    """Outcomes of one delivered batch."""
    outcomes: List[MessageOutcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[MessageOutcome]) -> "BatchResult":
        return cls(outcomes=list(outcomes))

    @property
    def failed_ids(self) -> List[str]:
        return [o.message_id for o in self.outcomes if not o.succeeded]

    @property
    def succeeded_ids(self) -> List[str]:
        return [o.message_id for o in self.outcomes if o.succeeded]

    @property
    def failure_count(self) -> int:
        return len(self.failed_ids)

    def to_response(self) -> dict:
        """Partial batch failure response for queue infrastructure."""
        return {"batchItemFailures": [{"itemIdentifier": mid} for mid in self.failed_ids]}


class BatchProcessor:
    """
    Processes a delivered batch with bounded concurrency.

    ``max_concurrency=1`` processes messages sequentially.
    """

    def __init__(
        self,
        processor: MessageProcessor,
        max_concurrency: int = 10,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.processor = processor
        self.max_concurrency = max_concurrency
        self.metrics = metrics

    async def _process_one(self, message: QueueMessage, semaphore: asyncio.Semaphore) -> MessageOutcome:
        async with semaphore:
            started = time.perf_counter()
            try:
                await self.processor.process(message.body)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome = MessageOutcome(
                    message_id=message.message_id,
                    succeeded=False,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                logger.error(
                    "Processing failed",
                    message_id=message.message_id,
                    receive_count=message.receive_count,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                outcome = MessageOutcome(message_id=message.message_id, succeeded=True)

            if self.metrics:
                self.metrics.record_message(outcome.succeeded, time.perf_counter() - started)
            return outcome

    async def process_batch(self, messages: Sequence[QueueMessage]) -> BatchResult:
        """
        Process every message and collect per-message outcomes.

        Args:
            messages: Delivered batch, any order

        Returns:
            BatchResult whose ``failed_ids`` must be redelivered
        """
        if not messages:
            return BatchResult()

        if self.metrics:
            self.metrics.record_batch(len(messages))

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._process_one(message, semaphore) for message in messages)
        )
        result = BatchResult.from_outcomes(outcomes)

        logger.info(
            "Batch processed",
            batch_size=len(messages),
            succeeded=len(result.succeeded_ids),
            failed=result.failure_count,
        )
        return result
