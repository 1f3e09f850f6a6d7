"""
Tests for the WorkerService loop.

Only messages whose records were written are acknowledged; failed ones
stay on the queue for redelivery.
"""

import asyncio

import pytest

from tenantlog.core.batch import BatchProcessor
from tenantlog.core.processing import MessageProcessor, zero_cost
from tenantlog.core.queue import InMemoryQueue
from tenantlog.core.store import RecordWriter
from tenantlog.core.worker import WorkerService


def build_worker(queue, store, max_concurrency: int = 4) -> WorkerService:
    processor = MessageProcessor(RecordWriter(store), cost_function=zero_cost)
    return WorkerService(
        queue,
        BatchProcessor(processor, max_concurrency=max_concurrency),
        batch_size=10,
        wait_seconds=0,
        idle_sleep_seconds=0.01,
    )


class TestRunOnce:
    """Test a single receive/process/acknowledge cycle."""

    @pytest.mark.asyncio
    async def test_successful_messages_acknowledged(self, fake_clock, memory_store, event_body) -> None:
        queue = InMemoryQueue(clock=fake_clock)
        await queue.send(event_body(log_id="1"))
        await queue.send(event_body(log_id="2"))

        result = await build_worker(queue, memory_store).run_once()

        assert result.failed_ids == []
        assert queue.depth == 0
        assert len(memory_store) == 2

    @pytest.mark.asyncio
    async def test_failed_message_left_for_redelivery(self, fake_clock, flaky_store_factory, event_body) -> None:
        queue = InMemoryQueue(visibility_timeout=30, clock=fake_clock)
        store = flaky_store_factory("2")
        await queue.send(event_body(log_id="1"))
        failing_id = await queue.send(event_body(log_id="2"))
        await queue.send(event_body(log_id="3"))
        worker = build_worker(queue, store)

        result = await worker.run_once()

        assert result.failed_ids == [failing_id]
        assert queue.depth == 1

        # Store recovers; the redelivered message succeeds
        store.failing_log_ids.clear()
        fake_clock.advance(31)
        retry = await worker.run_once()

        assert retry.succeeded_ids == [failing_id]
        assert queue.depth == 0
        assert [r.log_id for r in await store.query("acme_corp")] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_poison_message_dead_lettered(self, fake_clock, memory_store, event_body) -> None:
        queue = InMemoryQueue(visibility_timeout=30, max_receive_count=3, clock=fake_clock)
        await queue.send("{poison")
        await queue.send(event_body(log_id="ok"))
        worker = build_worker(queue, memory_store)

        for _ in range(3):
            await worker.run_once()
            fake_clock.advance(31)
        await worker.run_once()

        assert [m.body for m in queue.dead_letters] == ["{poison"]
        assert queue.depth == 0
        # Sibling written once, never reprocessed
        assert [r.log_id for r in await memory_store.query("acme_corp")] == ["ok"]

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, fake_clock, memory_store, event_body) -> None:
        queue = InMemoryQueue(clock=fake_clock)
        body = event_body(log_id="dup", text="ssn 123-45-6789")
        await queue.send(body)
        await queue.send(body)

        await build_worker(queue, memory_store).run_once()

        records = await memory_store.query("acme_corp")
        assert len(records) == 1
        assert records[0].modified_data == "ssn [REDACTED]"

    @pytest.mark.asyncio
    async def test_empty_queue(self, fake_clock, memory_store) -> None:
        result = await build_worker(InMemoryQueue(clock=fake_clock), memory_store).run_once()
        assert result.outcomes == []


class TestLifecycle:
    """Test start/stop of the background loop."""

    @pytest.mark.asyncio
    async def test_background_loop_drains_queue(self, memory_store, event_body) -> None:
        queue = InMemoryQueue()
        worker = build_worker(queue, memory_store)
        worker.wait_seconds = 0.05

        await worker.start()
        assert worker.is_healthy()
        await queue.send(event_body(log_id="bg"))

        for _ in range(100):
            if len(memory_store) == 1:
                break
            await asyncio.sleep(0.01)

        await worker.stop()

        assert not worker.is_healthy()
        assert (await memory_store.get("acme_corp", "bg")) is not None
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, memory_store) -> None:
        worker = build_worker(InMemoryQueue(), memory_store)
        await worker.stop()
        await worker.start()
        await worker.stop()
        await worker.stop()
        assert worker.status()["running"] is False
