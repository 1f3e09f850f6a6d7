"""
Background worker that drains the queue.

Long-polls the queue, runs each batch through the BatchProcessor and
acknowledges only the messages whose records were written. Failed
messages are left unacknowledged so the queue redelivers them after the
visibility timeout (and eventually dead-letters them).
"""

import asyncio
import signal
from typing import Any, Dict, Optional

import structlog

from .batch import BatchProcessor, BatchResult
from .exceptions import ConfigurationError
from .queue import QueueClient

logger = structlog.get_logger(__name__)


class WorkerService:
    """
    Background service running the batch worker loop.

    Features:
    - Automatic startup/shutdown
    - Long-poll receive
    - Per-message acknowledgment
    """

    def __init__(
        self,
        queue: QueueClient,
        batch_processor: BatchProcessor,
        batch_size: int = 10,
        wait_seconds: float = 20.0,
        idle_sleep_seconds: float = 1.0,
    ) -> None:
        self.queue = queue
        self.batch_processor = batch_processor
        self.batch_size = batch_size
        self.wait_seconds = wait_seconds
        self.idle_sleep_seconds = idle_sleep_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self.batches_processed = 0

        logger.info("Worker Service initialized", batch_size=batch_size, wait_seconds=wait_seconds)

    async def start(self) -> None:
        """Start the worker loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_worker_loop())

        logger.info("Worker Service started")

    async def stop(self) -> None:
        """Stop the worker loop. An in-flight batch is abandoned unacknowledged."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Worker Service stopped")

    async def run_once(self) -> BatchResult:
        """Receive, process and acknowledge a single batch."""
        messages = await self.queue.receive(self.batch_size, self.wait_seconds)
        if not messages:
            return BatchResult()

        result = await self.batch_processor.process_batch(messages)
        succeeded = set(result.succeeded_ids)

        for message in messages:
            if message.message_id not in succeeded:
                continue
            try:
                await self.queue.acknowledge(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Record is written; a redelivery overwrites it with the same content
                logger.warning(
                    "Acknowledge failed",
                    message_id=message.message_id,
                    error=str(e),
                )

        self.batches_processed += 1
        return result

    async def _run_worker_loop(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Worker loop error", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(self.idle_sleep_seconds)

    def is_healthy(self) -> bool:
        """Check if the worker loop is running."""
        return self._running and self._task is not None and not self._task.done()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "batches_processed": self.batches_processed,
        }


async def run_worker() -> None:
    """Run a standalone worker process until SIGINT/SIGTERM."""
    # Deferred: main imports this module for the embedded worker
    from ..config import get_settings
    from ..context import build_context
    from ..main import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    context = build_context(settings)
    await context.start()

    worker = WorkerService(
        context.queue,
        context.batch_processor(),
        batch_size=settings.worker.batch_size,
        wait_seconds=settings.queue.wait_seconds,
        idle_sleep_seconds=settings.worker.idle_sleep_seconds,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    await worker.start()
    try:
        await stop_event.wait()
    finally:
        await worker.stop()
        await context.close()


def main() -> None:
    """Console entry point for the worker."""
    try:
        asyncio.run(run_worker())
    except ConfigurationError as e:
        logger.error("Worker startup failed", error=str(e), details=e.details)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
