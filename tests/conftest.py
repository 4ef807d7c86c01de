"""Shared fixtures: an in-memory stand-in for the MQTT broker."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator

import pytest

from mqttshell.transport.link import BrokerError, BrokerEvent, BrokerEventType

# Per-connection behaviours a FakeBroker can be scripted with.
REFUSE = "refuse"  # connect() fails
DROP = "drop"  # connects and subscribes, then the connection is lost
SERVE = "serve"  # stays connected until cancelled


class FakeLink:
    """Duck-typed BrokerLink driven by a FakeBroker script."""

    def __init__(self, broker: FakeBroker, client_id: str, behaviour: str) -> None:
        self.broker = broker
        self.client_id = client_id
        self.behaviour = behaviour
        self.subscriptions: list[str] = []
        self.closed = False
        self.fail_publish = False
        self._queue: asyncio.Queue[BrokerEvent | BrokerError] = asyncio.Queue()

    async def connect(self) -> None:
        if self.behaviour == REFUSE:
            raise BrokerError("Connection refused")

    async def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    def publish(self, topic: str, payload: bytes | str) -> None:
        if self.fail_publish:
            raise BrokerError("not connected")
        if isinstance(payload, str):
            payload = payload.encode()
        self.broker.published.append((topic, payload))
        self.broker.activity.set()

    async def events(self) -> AsyncIterator[BrokerEvent]:
        if self.behaviour == DROP:
            raise BrokerError("Connection lost")
        self.broker.current = self
        self.broker.serving.set()
        yield BrokerEvent(BrokerEventType.CONNACK)
        while True:
            item = await self._queue.get()
            if isinstance(item, BrokerError):
                raise item
            yield item

    def inject(self, topic: str, payload: bytes) -> None:
        self._queue.put_nowait(BrokerEvent(BrokerEventType.PUBLISH, topic, payload))

    def drop(self) -> None:
        self._queue.put_nowait(BrokerError("Connection lost"))

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> FakeLink:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class FakeBroker:
    """Link factory: the n-th connection follows ``script[n]``, then SERVE."""

    def __init__(self) -> None:
        self.script: list[str] = []
        self.links: list[FakeLink] = []
        self.published: list[tuple[str, bytes]] = []
        self.current: FakeLink | None = None
        self.serving = asyncio.Event()
        self.activity = asyncio.Event()

    def __call__(self, host: str, port: int, client_id: str, keepalive: int) -> FakeLink:
        n = len(self.links)
        behaviour = self.script[n] if n < len(self.script) else SERVE
        link = FakeLink(self, client_id, behaviour)
        self.links.append(link)
        return link

    def published_on(self, topic: str) -> list[bytes]:
        return [payload for t, payload in self.published if t == topic]

    async def wait_published(self, topic: str, count: int, timeout: float = 2.0) -> list[bytes]:
        async def _wait() -> None:
            while len(self.published_on(topic)) < count:
                self.activity.clear()
                await self.activity.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self.published_on(topic)


class StopRetrying(Exception):
    """Raised by RecordingSleep to break out of a reconnect loop."""


class RecordingSleep:
    """Fake ``sleep`` for the reconnect policy: records delays, never waits."""

    def __init__(self, limit: int | None = None) -> None:
        self.delays: list[float] = []
        self.limit = limit

    async def __call__(self, delay: float) -> None:
        self.delays.append(float(delay))
        if self.limit is not None and len(self.delays) >= self.limit:
            raise StopRetrying()
        await asyncio.sleep(0)


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def loop() -> Iterator[asyncio.AbstractEventLoop]:
    """A non-running loop for subscriptions consumed with ``try_recv``."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()
