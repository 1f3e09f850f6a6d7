"""
Tests for the Enqueuer.

Covers serialization of the queued payload, the accepted response and
translation of queue faults.
"""

import json

import pytest
from prometheus_client import CollectorRegistry

from tenantlog.core.enqueuer import Enqueuer
from tenantlog.core.exceptions import EnqueueError
from tenantlog.core.metrics import MetricsCollector
from tenantlog.models.log_event import LogEvent, LogSource


@pytest.fixture
def event() -> LogEvent:
    return LogEvent(
        tenant_id="acme_corp",
        log_id="101",
        original_text="User 800-555-0199 logged in",
        source=LogSource.JSON_UPLOAD,
    )


class TestEnqueuer:
    """Test handing events to the queue."""

    @pytest.mark.asyncio
    async def test_sends_exactly_once(self, recording_queue, event: LogEvent) -> None:
        await Enqueuer(recording_queue).enqueue(event)
        assert len(recording_queue.sent) == 1

    @pytest.mark.asyncio
    async def test_wire_format(self, recording_queue, event: LogEvent) -> None:
        await Enqueuer(recording_queue).enqueue(event)
        assert json.loads(recording_queue.sent[0]) == {
            "tenant_id": "acme_corp",
            "log_id": "101",
            "original_text": "User 800-555-0199 logged in",
            "source": "json_upload",
        }

    @pytest.mark.asyncio
    async def test_accepted_response(self, recording_queue, event: LogEvent) -> None:
        response = await Enqueuer(recording_queue).enqueue(event)
        assert response.model_dump() == {
            "status": "accepted",
            "log_id": "101",
            "tenant_id": "acme_corp",
            "message": "Processing queued",
        }

    @pytest.mark.asyncio
    async def test_queue_failure_raises_enqueue_error(self, failing_queue, event: LogEvent) -> None:
        with pytest.raises(EnqueueError) as exc_info:
            await Enqueuer(failing_queue).enqueue(event)

        assert failing_queue.attempts == 1
        assert exc_info.value.status_code == 500
        assert exc_info.value.reason == "Internal server error"

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, recording_queue, failing_queue, event: LogEvent) -> None:
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        await Enqueuer(recording_queue, metrics=metrics).enqueue(event)
        with pytest.raises(EnqueueError):
            await Enqueuer(failing_queue, metrics=metrics).enqueue(event)

        assert registry.get_sample_value("logs_accepted_total", {"source": "json_upload"}) == 1.0
        assert registry.get_sample_value("enqueue_failures_total") == 1.0
