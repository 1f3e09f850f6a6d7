"""
Pytest configuration and shared fixtures.

Contains common test fixtures, fake collaborators and setup for all test
modules.
"""

from typing import Any, Callable, Dict, Generator, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from tenantlog.config import QueueSettings, Settings, StoreSettings, WorkerSettings
from tenantlog.context import PipelineContext, build_context
from tenantlog.core.exceptions import QueueError
from tenantlog.core.processing import zero_cost
from tenantlog.core.queue import InMemoryQueue, QueueClient, QueueMessage
from tenantlog.core.store import InMemoryRecordStore
from tenantlog.main import create_app
from tenantlog.models.log_event import LogEvent, LogSource, ProcessedRecord


class RecordingQueue(QueueClient):
    """Queue fake that records every sent body."""

    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send(self, body: str) -> str:
        self.sent.append(body)
        return f"msg-{len(self.sent)}"

    async def receive(self, max_messages: int, wait_seconds: float) -> List[QueueMessage]:
        return []

    async def acknowledge(self, message: QueueMessage) -> None:
        return None

    async def ping(self) -> bool:
        return True


class FailingQueue(RecordingQueue):
    """Queue fake whose backend is unreachable."""

    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    async def send(self, body: str) -> str:
        self.attempts += 1
        raise QueueError("Queue request failed: ClientConnectorError")

    async def ping(self) -> bool:
        return False


class FlakyStore(InMemoryRecordStore):
    """Store fake that fails writes for selected log ids."""

    def __init__(self, failing_log_ids: Iterable[str] = ()) -> None:
        super().__init__(table="flaky")
        self.failing_log_ids = set(failing_log_ids)
        self.put_calls = 0

    async def put(self, record: ProcessedRecord) -> None:
        self.put_calls += 1
        if record.log_id in self.failing_log_ids:
            raise ConnectionError(f"store unavailable for {record.log_id}")
        await super().put(record)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_settings(tmp_path: Any) -> Settings:
    """Settings with in-memory backends and no simulated delay."""
    return Settings(
        log_level="DEBUG",
        queue=QueueSettings(url="memory://test", wait_seconds=0.05, visibility_timeout_seconds=30),
        store=StoreSettings(table="test_records", backend="memory", root_path=tmp_path),
        worker=WorkerSettings(enabled=False, batch_size=10, max_concurrency=4, idle_sleep_seconds=0.01),
    )


@pytest.fixture
def registry() -> CollectorRegistry:
    """Fresh Prometheus registry per test."""
    return CollectorRegistry()


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore(table="test_records")


@pytest.fixture
def memory_queue() -> InMemoryQueue:
    return InMemoryQueue(name="test", visibility_timeout=30.0, max_receive_count=3)


@pytest.fixture
def pipeline_context(
    test_settings: Settings,
    recording_queue: RecordingQueue,
    memory_store: InMemoryRecordStore,
    registry: CollectorRegistry,
) -> PipelineContext:
    return build_context(
        test_settings,
        queue=recording_queue,
        store=memory_store,
        registry=registry,
        cost_function=zero_cost,
    )


@pytest.fixture
def test_client(pipeline_context: PipelineContext) -> Generator[TestClient, None, None]:
    """FastAPI test client over a recording queue and in-memory store."""
    with TestClient(create_app(context=pipeline_context)) as client:
        yield client


@pytest.fixture
def acme_payload() -> Dict[str, Any]:
    """JSON submission containing a phone number and an IP address."""
    return {
        "tenant_id": "acme_corp",
        "log_id": "101",
        "text": "User 800-555-0199 logged in from 192.168.1.1",
    }


@pytest.fixture
def failing_queue() -> FailingQueue:
    return FailingQueue()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def flaky_store_factory() -> Callable[..., FlakyStore]:
    """Build a store that fails writes for the given log ids."""
    def factory(*failing_log_ids: str) -> FlakyStore:
        return FlakyStore(failing_log_ids)
    return factory


@pytest.fixture
def make_message() -> Callable[..., QueueMessage]:
    """Build a delivered queue message around a body."""
    counter = iter(range(1, 10_000))

    def factory(body: str, message_id: Optional[str] = None, receive_count: int = 1) -> QueueMessage:
        message_id = message_id or f"msg-{next(counter)}"
        return QueueMessage(
            message_id=message_id,
            receipt_handle=f"rh-{message_id}",
            body=body,
            receive_count=receive_count,
        )
    return factory


@pytest.fixture
def event_body() -> Callable[..., str]:
    """Serialize a LogEvent to its queue wire form."""
    def factory(tenant_id: str = "acme_corp", log_id: str = "1", text: str = "hello", source: str = "json_upload") -> str:
        return LogEvent(
            tenant_id=tenant_id,
            log_id=log_id,
            original_text=text,
            source=LogSource(source),
        ).to_message_body()
    return factory
