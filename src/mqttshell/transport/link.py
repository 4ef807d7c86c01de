"""Broker link — one paho-mqtt connection bridged into asyncio.

paho runs its network loop on its own thread (``loop_start``) and reports
through callbacks. The link turns those callbacks into an asyncio queue of
:class:`BrokerEvent` so the transport loops can be written as plain
``async for`` loops. A link is good for exactly one connection: once the
broker drops it, ``events()`` raises :class:`BrokerError` and the caller
builds a fresh link. paho's own auto-reconnect is disabled.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

QOS_AT_MOST_ONCE = 0
DEFAULT_KEEPALIVE = 5


class BrokerError(Exception):
    """Connecting, subscribing, publishing or the connection itself failed."""


class BrokerEventType(enum.Enum):
    CONNACK = "connack"
    PUBLISH = "publish"


@dataclass(frozen=True)
class BrokerEvent:
    """Something the broker told us."""

    type: BrokerEventType
    topic: str = ""
    payload: bytes = b""


class BrokerLink:
    """Async facade over a single ``paho.mqtt.client.Client`` connection.

    Example:
        async with BrokerLink("127.0.0.1", 1883, "agent") as link:
            await link.connect()
            await link.subscribe("shell/in")
            async for event in link.events():
                ...
    """

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        keepalive: int = DEFAULT_KEEPALIVE,
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            reconnect_on_failure=False,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._events: asyncio.Queue[BrokerEvent | BrokerError] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False
        self._connecting: asyncio.Future[None] | None = None

    # -- paho callbacks (network thread) -----------------------------------

    def _deliver(self, item: BrokerEvent | BrokerError) -> None:
        if self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._events.put_nowait, item)
        except RuntimeError:
            # Event loop closed underneath us; the link is being torn down.
            pass

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self._deliver(BrokerError(f"Broker refused connection: {reason_code}"))
        else:
            self._deliver(BrokerEvent(BrokerEventType.CONNACK))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._deliver(BrokerError(f"Disconnected from broker: {reason_code}"))

    def _on_message(self, client, userdata, message: mqtt.MQTTMessage) -> None:
        self._deliver(
            BrokerEvent(BrokerEventType.PUBLISH, message.topic, bytes(message.payload))
        )

    # -- asyncio side ------------------------------------------------------

    async def connect(self) -> None:
        """Open the TCP connection and start paho's network thread.

        Raises:
            BrokerError: The broker is unreachable.
        """
        self._loop = asyncio.get_running_loop()
        self._connecting = asyncio.ensure_future(
            asyncio.to_thread(self._client.connect, self.host, self.port, self.keepalive)
        )
        try:
            # Survives cancellation of connect(); close() waits for it.
            await asyncio.shield(self._connecting)
        except (OSError, ValueError) as e:
            raise BrokerError(
                f"Failed to connect to {self.host}:{self.port}: {e}"
            ) from e
        rc = self._client.loop_start()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerError(f"Failed to start network loop: {mqtt.error_string(rc)}")
        self._started = True

    async def subscribe(self, topic: str) -> None:
        """Subscribe to ``topic`` at QoS 0.

        Raises:
            BrokerError: The subscribe request could not be queued.
        """
        rc, _mid = self._client.subscribe(topic, qos=QOS_AT_MOST_ONCE)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerError(f"Failed to subscribe to {topic}: {mqtt.error_string(rc)}")

    def publish(self, topic: str, payload: bytes | str) -> None:
        """Publish at QoS 0. Non-blocking; safe to call from any task.

        Raises:
            BrokerError: The message could not be queued.
        """
        info = self._client.publish(topic, payload, qos=QOS_AT_MOST_ONCE)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerError(f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}")

    async def events(self) -> AsyncIterator[BrokerEvent]:
        """Yield broker events until the connection fails.

        Raises:
            BrokerError: The connection was lost or refused.
        """
        while True:
            item = await self._events.get()
            if isinstance(item, BrokerError):
                raise item
            yield item

    async def close(self) -> None:
        """Disconnect and stop the network thread.

        An interrupted ``connect()`` is waited for first, so its socket exists
        by the time ``disconnect()`` closes it.
        """
        if self._connecting is not None and not self._connecting.done():
            await asyncio.gather(self._connecting, return_exceptions=True)
        self._client.disconnect()
        if self._started:
            self._started = False
            await asyncio.to_thread(self._client.loop_stop)

    async def __aenter__(self) -> BrokerLink:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
