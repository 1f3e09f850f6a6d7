"""
Per-message processing pipeline.

RECEIVED -> DESERIALIZED -> simulated cost -> REDACTED -> PERSISTED

A message fails at deserialization (DeserializationError) or persistence
(StoreWriteError). The original event fields are copied unchanged into
the stored record; only derived fields are added.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..config import ProcessingSettings
from ..models.log_event import LogEvent, ProcessedRecord
from .exceptions import DeserializationError
from .metrics import MetricsCollector
from .redaction import Redactor
from .store import RecordWriter

logger = structlog.get_logger(__name__)

CostFunction = Callable[[int], float]


@dataclass(frozen=True)
class LinearCost:
    """Delay proportional to input length, capped."""
    per_char_seconds: float = 0.05
    cap_seconds: float = 5.0

    def __call__(self, length: int) -> float:
        return min(max(length, 0) * self.per_char_seconds, self.cap_seconds)

    @classmethod
    def from_settings(cls, settings: ProcessingSettings) -> "LinearCost":
        return cls(per_char_seconds=settings.per_char_seconds, cap_seconds=settings.cap_seconds)


def zero_cost(length: int) -> float:
    return 0.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def deserialize_event(body: str) -> LogEvent:
    """
    Parse a queue payload.

    Raises:
        DeserializationError: body is not a complete, valid LogEvent
    """
    try:
        return LogEvent.model_validate_json(body)
    except PydanticValidationError as e:
        raise DeserializationError(
            "Malformed queue payload",
            details={"errors": e.error_count(), "error": str(e)},
        ) from e


class MessageProcessor:
    """
    Processes a single queue payload end to end.

    Collaborators are injected so tests can stub the cost delay, the
    clock and the store.
    """

    def __init__(
        self,
        writer: RecordWriter,
        cost_function: CostFunction = LinearCost(),
        redactor: Optional[Redactor] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.writer = writer
        self.cost_function = cost_function
        self.redactor = redactor or Redactor()
        self.metrics = metrics
        self._sleep = sleep
        self._clock = clock

    async def process(self, body: str) -> ProcessedRecord:
        """
        Run the pipeline for one payload.

        Returns:
            The persisted record

        Raises:
            DeserializationError, StoreWriteError
        """
        event = deserialize_event(body)

        logger.info(
            "Processing message",
            tenant_id=event.tenant_id,
            log_id=event.log_id,
            text_length=len(event.original_text),
        )

        delay = self.cost_function(len(event.original_text))
        if delay > 0:
            await self._sleep(delay)

        # Redaction is CPU-bound; keep it off the event loop
        modified_data, counts = await asyncio.to_thread(
            self.redactor.redact_with_counts, event.original_text
        )
        if self.metrics:
            self.metrics.record_redactions(counts)

        record = ProcessedRecord.from_event(
            event,
            modified_data=modified_data,
            processed_at=self._clock(),
        )
        await self.writer.write(record)

        logger.info(
            "Successfully processed",
            tenant_id=event.tenant_id,
            log_id=event.log_id,
            redactions=sum(counts.values()),
        )
        return record
