"""Lossy broadcast channel between the PTY threads and the transport.

The PTY reader thread produces output frames and status tokens at whatever
rate the shell dictates. Transport connections come and go; each one
subscribes for as long as it lives. The channel decouples the two sides:

* Every subscriber gets its own bounded buffer (a ``deque`` with
  ``maxlen``). When a subscriber falls behind past capacity the **oldest**
  buffered items are discarded. Producers never block.
* With no subscriber attached, sent items are simply dropped.
* A subscriber only sees items sent after it subscribed.

``send()`` is thread-safe and may be called from any thread. Subscribers
are consumed from an asyncio event loop; wake-ups are delivered with
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OUTPUT_CAPACITY = 1000
STATUS_CAPACITY = 10


class ChannelClosed(Exception):
    """Raised by ``Subscription.recv()`` once the channel is closed and drained."""


class Subscription(Generic[T]):
    """One consumer's view of a :class:`Broadcast`."""

    def __init__(
        self,
        channel: Broadcast[T],
        capacity: int,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._channel = channel
        self._items: deque[T] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._loop = loop
        self._event = asyncio.Event()
        self._closed = False
        self.dropped = 0

    def _push(self, item: T) -> None:
        with self._lock:
            if self._closed:
                return
            if len(self._items) == self._items.maxlen:
                self.dropped += 1
            self._items.append(item)
        self._wake()

    def _close(self) -> None:
        with self._lock:
            self._closed = True
        self._wake()

    def _wake(self) -> None:
        try:
            self._loop.call_soon_threadsafe(self._event.set)
        except RuntimeError:
            # Event loop already closed; nobody is waiting any more.
            pass

    def try_recv(self) -> T | None:
        """Pop the oldest buffered item without waiting."""
        with self._lock:
            if self._items:
                return self._items.popleft()
        return None

    async def recv(self) -> T:
        """Wait for the next item.

        Raises:
            ChannelClosed: The channel was closed and nothing is left.
        """
        while True:
            with self._lock:
                if self._items:
                    return self._items.popleft()
                if self._closed:
                    raise ChannelClosed()
                self._event.clear()
            await self._event.wait()

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration from None

    def unsubscribe(self) -> None:
        """Detach from the channel. Buffered items are discarded."""
        self._channel._remove(self)
        if self.dropped:
            logger.debug("Subscriber detached after dropping %d items", self.dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Broadcast(Generic[T]):
    """Multi-producer, multi-consumer channel with drop-oldest overflow."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._subscribers: list[Subscription[T]] = []
        self._lock = threading.Lock()
        self._closed = False

    def send(self, item: T) -> int:
        """Deliver ``item`` to every current subscriber.

        Returns the number of subscribers reached; 0 means the item was
        dropped. Silently drops items after ``close()``.
        """
        with self._lock:
            if self._closed:
                return 0
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub._push(item)
        return len(subscribers)

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> Subscription[T]:
        """Attach a new consumer.

        Must be called from the asyncio thread (or pass an explicit loop).
        Subscribing to a closed channel returns an already-closed subscription.
        """
        sub = Subscription(self, self.capacity, loop or asyncio.get_running_loop())
        with self._lock:
            if self._closed:
                sub._close()
            else:
                self._subscribers.append(sub)
        return sub

    def _remove(self, sub: Subscription[T]) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def receiver_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the channel. Subscribers drain what they hold, then stop."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for sub in subscribers:
            sub._close()


class ShellFanout:
    """The pair of broadcast channels owned by one shell epoch."""

    def __init__(
        self,
        output_capacity: int = OUTPUT_CAPACITY,
        status_capacity: int = STATUS_CAPACITY,
    ) -> None:
        self.output: Broadcast[bytes] = Broadcast(output_capacity)
        self.status: Broadcast[str] = Broadcast(status_capacity)

    def send_output(self, data: bytes) -> None:
        self.output.send(data)

    def send_status(self, token: str) -> None:
        reached = self.status.send(token)
        if reached:
            logger.info("Status '%s' queued for %d subscriber(s)", token, reached)
        else:
            logger.info("Status '%s' dropped: no subscriber attached", token)

    def close(self) -> None:
        self.output.close()
        self.status.close()
