"""
Tests for per-message processing.

Covers deserialization, the simulated cost delay, redaction and the
record handed to the store.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import pytest

from tenantlog.core.exceptions import DeserializationError, StoreWriteError
from tenantlog.core.processing import LinearCost, MessageProcessor, deserialize_event, zero_cost
from tenantlog.core.redaction import Redactor
from tenantlog.core.store import RecordWriter
from tenantlog.models.log_event import LogSource, RecordStatus

FIXED_NOW = datetime(2025, 9, 22, 10, 30, tzinfo=timezone.utc)


class SlowRedactor(Redactor):
    """Redactor that holds its thread for a while."""

    def redact_with_counts(self, text: str) -> Tuple[str, Dict[str, int]]:
        time.sleep(0.3)
        return super().redact_with_counts(text)


class TestLinearCost:
    """Test the simulated cost function."""

    def test_proportional_to_length(self) -> None:
        cost = LinearCost(per_char_seconds=0.05, cap_seconds=5.0)
        assert cost(10) == pytest.approx(0.5)

    def test_capped(self) -> None:
        cost = LinearCost(per_char_seconds=0.05, cap_seconds=5.0)
        assert cost(10_000) == 5.0

    def test_zero_length(self) -> None:
        assert LinearCost()(0) == 0.0

    def test_zero_cost(self) -> None:
        assert zero_cost(10_000) == 0.0


class TestDeserializeEvent:
    """Test queue payload parsing."""

    def test_valid_payload(self, event_body) -> None:
        event = deserialize_event(event_body(tenant_id="beta_inc", log_id="7", text="x", source="text_upload"))
        assert event.tenant_id == "beta_inc"
        assert event.source == LogSource.TEXT_UPLOAD

    @pytest.mark.parametrize(
        "body",
        [
            "not json",
            "{}",
            '{"tenant_id": "", "log_id": "1", "original_text": "x", "source": "json_upload"}',
            '{"tenant_id": "a", "log_id": "1", "original_text": "x", "source": "fax"}',
            '{"tenant_id": "a", "log_id": "1", "source": "json_upload"}',
        ],
    )
    def test_malformed_payload(self, body: str) -> None:
        with pytest.raises(DeserializationError):
            deserialize_event(body)


class TestMessageProcessor:
    """Test the per-message pipeline."""

    @pytest.mark.asyncio
    async def test_writes_redacted_record(self, memory_store, event_body) -> None:
        processor = MessageProcessor(RecordWriter(memory_store), cost_function=zero_cost, clock=lambda: FIXED_NOW)
        body = event_body(log_id="101", text="User 800-555-0199 logged in from 192.168.1.1")

        record = await processor.process(body)

        stored = await memory_store.get("acme_corp", "101")
        assert stored == record
        assert record.modified_data == "User [REDACTED] logged in from 192.168.1.1"
        assert record.original_text == "User 800-555-0199 logged in from 192.168.1.1"
        assert record.status == RecordStatus.PROCESSED
        assert record.processed_at == FIXED_NOW
        assert record.source == LogSource.JSON_UPLOAD

    @pytest.mark.asyncio
    async def test_sleeps_for_simulated_cost(self, memory_store, event_body) -> None:
        delays: List[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        processor = MessageProcessor(
            RecordWriter(memory_store),
            cost_function=LinearCost(per_char_seconds=0.05, cap_seconds=5.0),
            sleep=fake_sleep,
        )
        await processor.process(event_body(text="0123456789"))

        assert delays == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_no_sleep_when_cost_is_zero(self, memory_store, event_body) -> None:
        delays: List[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        processor = MessageProcessor(RecordWriter(memory_store), cost_function=zero_cost, sleep=fake_sleep)
        await processor.process(event_body())

        assert delays == []

    @pytest.mark.asyncio
    async def test_malformed_payload_never_reaches_store(self, flaky_store_factory) -> None:
        store = flaky_store_factory()
        processor = MessageProcessor(RecordWriter(store), cost_function=zero_cost)

        with pytest.raises(DeserializationError):
            await processor.process("{broken")

        assert store.put_calls == 0

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, flaky_store_factory, event_body) -> None:
        store = flaky_store_factory("bad")
        processor = MessageProcessor(RecordWriter(store), cost_function=zero_cost)

        with pytest.raises(StoreWriteError):
            await processor.process(event_body(log_id="bad"))

        assert await store.get("acme_corp", "bad") is None

    @pytest.mark.asyncio
    async def test_redaction_does_not_block_event_loop(self, memory_store, event_body) -> None:
        processor = MessageProcessor(RecordWriter(memory_store), cost_function=zero_cost, redactor=SlowRedactor())
        ticks = 0

        async def ticker() -> None:
            nonlocal ticks
            while True:
                ticks += 1
                await asyncio.sleep(0.01)

        ticking = asyncio.create_task(ticker())
        try:
            await processor.process(event_body(text="mail a@b.com"))
        finally:
            ticking.cancel()

        assert ticks >= 5
        assert (await memory_store.get("acme_corp", "1")).modified_data == "mail [REDACTED]"

    @pytest.mark.asyncio
    async def test_long_dotted_text_processed(self, memory_store, event_body) -> None:
        processor = MessageProcessor(RecordWriter(memory_store), cost_function=zero_cost)
        text = "a." * 50_000

        started = time.perf_counter()
        record = await processor.process(event_body(text=text))

        assert time.perf_counter() - started < 2.0
        assert record.modified_data == text
