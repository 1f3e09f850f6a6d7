"""
Queue collaborator clients.

The pipeline only needs four operations from a queue: send, long-poll
receive, acknowledge and a reachability ping. Delivery is at-least-once:
a received message stays invisible for the visibility timeout and
reappears unless acknowledged.

Backends:
- InMemoryQueue: single-process queue with visibility timeout, receive
  counting and a dead-letter list (local runs and tests)
- HttpQueueClient: aiohttp client for a REST queue broker
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlparse

import aiohttp
import structlog

from ..config import QueueSettings
from .exceptions import ConfigurationError, QueueError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    """A delivered message."""
    message_id: str
    receipt_handle: str
    body: str
    receive_count: int = 1


class QueueClient(ABC):
    """Interface the ingest and worker sides consume."""

    async def start(self) -> None:
        """Open connections."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def send(self, body: str) -> str:
        """Enqueue ``body`` and return the message id."""

    @abstractmethod
    async def receive(self, max_messages: int, wait_seconds: float) -> List[QueueMessage]:
        """Long-poll for up to ``max_messages`` messages."""

    @abstractmethod
    async def acknowledge(self, message: QueueMessage) -> None:
        """Delete a successfully processed message."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the queue is reachable."""


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    receive_count: int = 0
    visible_at: float = 0.0
    receipt_handle: Optional[str] = None


class InMemoryQueue(QueueClient):
    """
    In-process queue with SQS-like delivery semantics.

    - a received message is hidden for ``visibility_timeout`` seconds
    - unacknowledged messages become visible again afterwards
    - a message already delivered ``max_receive_count`` times is moved to
      ``dead_letters`` instead of being delivered again
    """

    def __init__(
        self,
        name: str = "default",
        visibility_timeout: float = 30.0,
        max_receive_count: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self._clock = clock
        self._messages: Dict[str, _StoredMessage] = {}
        self._dead_letters: List[QueueMessage] = []
        self._available: Optional[asyncio.Event] = None

        logger.info(
            "In-memory queue initialized",
            queue=name,
            visibility_timeout=visibility_timeout,
            max_receive_count=max_receive_count,
        )

    @property
    def depth(self) -> int:
        """Messages not yet acknowledged or dead-lettered."""
        return len(self._messages)

    @property
    def dead_letters(self) -> List[QueueMessage]:
        return list(self._dead_letters)

    def _event(self) -> asyncio.Event:
        if self._available is None:
            self._available = asyncio.Event()
        return self._available

    async def send(self, body: str) -> str:
        message_id = str(uuid.uuid4())
        self._messages[message_id] = _StoredMessage(message_id=message_id, body=body)
        self._event().set()
        logger.debug("Message enqueued", queue=self.name, message_id=message_id)
        return message_id

    def _collect_visible(self, max_messages: int) -> List[QueueMessage]:
        now = self._clock()
        delivered: List[QueueMessage] = []

        for stored in list(self._messages.values()):
            if len(delivered) >= max_messages:
                break
            if stored.visible_at > now:
                continue

            if stored.receive_count >= self.max_receive_count:
                del self._messages[stored.message_id]
                self._dead_letters.append(
                    QueueMessage(
                        message_id=stored.message_id,
                        receipt_handle=stored.receipt_handle or "",
                        body=stored.body,
                        receive_count=stored.receive_count,
                    )
                )
                logger.warning(
                    "Message moved to dead-letter list",
                    queue=self.name,
                    message_id=stored.message_id,
                    receive_count=stored.receive_count,
                )
                continue

            stored.receive_count += 1
            stored.visible_at = now + self.visibility_timeout
            stored.receipt_handle = str(uuid.uuid4())
            delivered.append(
                QueueMessage(
                    message_id=stored.message_id,
                    receipt_handle=stored.receipt_handle,
                    body=stored.body,
                    receive_count=stored.receive_count,
                )
            )

        return delivered

    def _next_visible_in(self) -> Optional[float]:
        now = self._clock()
        pending = [m.visible_at - now for m in self._messages.values() if m.visible_at > now]
        return min(pending) if pending else None

    async def receive(self, max_messages: int, wait_seconds: float) -> List[QueueMessage]:
        deadline = self._clock() + wait_seconds
        event = self._event()

        while True:
            event.clear()
            delivered = self._collect_visible(max_messages)
            if delivered:
                return delivered

            remaining = deadline - self._clock()
            if remaining <= 0:
                return []

            next_visible = self._next_visible_in()
            timeout = remaining if next_visible is None else min(remaining, next_visible)
            try:
                await asyncio.wait_for(event.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

    async def acknowledge(self, message: QueueMessage) -> None:
        stored = self._messages.get(message.message_id)
        if stored is None:
            logger.debug("Acknowledge for unknown message", queue=self.name, message_id=message.message_id)
            return
        # Only the latest delivery may delete the message
        if stored.receipt_handle != message.receipt_handle:
            logger.debug("Ignoring stale acknowledge", queue=self.name, message_id=message.message_id)
            return
        del self._messages[message.message_id]
        logger.debug("Message acknowledged", queue=self.name, message_id=message.message_id)

    async def ping(self) -> bool:
        return True


class HttpQueueClient(QueueClient):
    """
    aiohttp client for a REST queue broker.

    Endpoints (relative to the queue URL):
    - POST   /messages                      {"body": ...} -> {"message_id": ...}
    - GET    /messages?max_messages=&wait_seconds=&visibility_timeout=
    - DELETE /messages/{receipt_handle}
    - GET    /health
    """

    def __init__(self, settings: QueueSettings) -> None:
        self.settings = settings
        self.base_url = settings.url.rstrip("/")
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("HTTP queue client initialized", queue_url=self.base_url)

    async def start(self) -> None:
        if self.session is not None:
            return
        # Long polls must outlive the receive wait
        total = self.settings.timeout_seconds + self.settings.wait_seconds
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=total))
        logger.info("HTTP queue client started")

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
        logger.info("HTTP queue client stopped")

    def _session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise QueueError("Queue client not started")
        return self.session

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._session().request(method, url, **kwargs) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise QueueError(
                        f"Queue returned HTTP {response.status}",
                        details={"status": response.status, "body": error_text[:512]},
                    )
                if response.status == 204:
                    return {}
                data: Dict[str, Any] = await response.json()
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise QueueError(
                f"Queue request failed: {type(e).__name__}",
                details={"method": method, "url": url, "error": str(e)},
            ) from e

    async def send(self, body: str) -> str:
        data = await self._request("POST", "/messages", json={"body": body})
        message_id = data.get("message_id")
        if not isinstance(message_id, str):
            raise QueueError("Queue response missing message_id", details={"response": data})
        return message_id

    async def receive(self, max_messages: int, wait_seconds: float) -> List[QueueMessage]:
        params = {
            "max_messages": str(max_messages),
            "wait_seconds": str(wait_seconds),
            "visibility_timeout": str(self.settings.visibility_timeout_seconds),
        }
        data = await self._request("GET", "/messages", params=params)

        messages = []
        for raw in data.get("messages", []):
            try:
                messages.append(
                    QueueMessage(
                        message_id=str(raw["message_id"]),
                        receipt_handle=str(raw["receipt_handle"]),
                        body=str(raw["body"]),
                        receive_count=int(raw.get("receive_count", 1)),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Skipping malformed queue envelope", error=str(e))
        return messages

    async def acknowledge(self, message: QueueMessage) -> None:
        receipt = quote(message.receipt_handle, safe="")
        await self._request("DELETE", f"/messages/{receipt}")

    async def ping(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except QueueError as e:
            logger.warning("Queue ping failed", error=str(e))
            return False


def create_queue_client(settings: QueueSettings) -> QueueClient:
    """Build the queue client for the configured endpoint."""
    parsed = urlparse(settings.url)

    if parsed.scheme == "memory":
        return InMemoryQueue(
            name=parsed.netloc or parsed.path or "default",
            visibility_timeout=settings.visibility_timeout_seconds,
            max_receive_count=settings.max_receive_count,
        )

    if parsed.scheme in ("http", "https"):
        return HttpQueueClient(settings)

    raise ConfigurationError(
        "Unsupported queue endpoint",
        details={"url": settings.url, "scheme": parsed.scheme},
    )
