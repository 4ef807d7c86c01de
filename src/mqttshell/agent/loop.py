"""Agent transport loop — bridges one shell epoch to the broker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Callable, Protocol

from mqttshell.config import BrokerConfig
from mqttshell.protocol.resize import decode_resize
from mqttshell.protocol.topics import Topics
from mqttshell.pty.fanout import ShellFanout, Subscription
from mqttshell.pty.relay import InputRelay
from mqttshell.transport.backoff import Backoff, reconnect_policy
from mqttshell.transport.link import BrokerError, BrokerEvent, BrokerEventType, BrokerLink

logger = logging.getLogger(__name__)

LinkFactory = Callable[[str, int, str, int], BrokerLink]


class Resizable(Protocol):
    def resize(self, rows: int, cols: int) -> None: ...


async def forward(sub: Subscription, link: BrokerLink, topic: str) -> None:
    """Publish everything from ``sub`` to ``topic`` until a publish fails.

    Also ends when the subscription's channel is closed and drained.
    """
    async for item in sub:
        try:
            link.publish(topic, item)
        except BrokerError as e:
            logger.warning("Forwarding to %s stopped: %s", topic, e)
            return


class AgentTransport:
    """Connect/subscribe/drain/backoff state machine for one shell epoch.

    Each connection attempt goes
    ``connect -> subscribe(in) -> subscribe(resize) -> ready -> drain``.
    Any :class:`BrokerError` along the way tears the connection down, waits
    the current backoff delay and starts over. While ``ready``, two
    forwarding tasks publish the fan-out's output and status streams; they
    belong to that connection only and are cancelled with it.

    The owning orchestrator cancels ``run()`` when the shell exits.
    """

    def __init__(
        self,
        broker: BrokerConfig,
        topics: Topics,
        fanout: ShellFanout,
        relay: InputRelay,
        pty: Resizable,
        backoff: Backoff | None = None,
        link_factory: LinkFactory = BrokerLink,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.broker = broker
        self.topics = topics
        self.fanout = fanout
        self.relay = relay
        self.pty = pty
        self.backoff = backoff or Backoff()
        self._link_factory = link_factory
        self._sleep = sleep
        self._forwarders: list[asyncio.Task] = []

    async def run(self) -> None:
        """Reconnect forever. Only cancellation stops it."""
        async for attempt in reconnect_policy(self.backoff, sleep=self._sleep):
            with attempt:
                await self._run_connection()

    async def _run_connection(self) -> None:
        logger.info(
            "Connecting to MQTT broker at %s:%d...", self.broker.host, self.broker.port
        )
        link = self._link_factory(
            self.broker.host,
            self.broker.port,
            self.broker.agent_client_id,
            self.broker.keepalive,
        )
        async with link:
            await link.connect()
            await link.subscribe(self.topics.input)
            await link.subscribe(self.topics.resize)
            logger.info("Subscribed to MQTT topics")
            self.backoff.reset()

            output_sub = self.fanout.output.subscribe()
            status_sub = self.fanout.status.subscribe()
            logger.debug(
                "Broadcast receivers created (output: %d, status: %d)",
                self.fanout.output.receiver_count,
                self.fanout.status.receiver_count,
            )
            self._forwarders = [
                asyncio.create_task(
                    forward(output_sub, link, self.topics.output), name="forward-output"
                ),
                asyncio.create_task(
                    forward(status_sub, link, self.topics.status), name="forward-status"
                ),
            ]
            try:
                logger.info("MQTT agent ready")
                async for event in link.events():
                    self.handle_event(event)
            finally:
                forwarders, self._forwarders = self._forwarders, []
                for task in forwarders:
                    task.cancel()
                await asyncio.gather(*forwarders, return_exceptions=True)
                output_sub.unsubscribe()
                status_sub.unsubscribe()

    def handle_event(self, event: BrokerEvent) -> None:
        """Route one inbound broker event."""
        if event.type is BrokerEventType.CONNACK:
            logger.info("Connected to MQTT broker")
            return

        if event.topic == self.topics.input:
            if not self.relay.put(event.payload):
                logger.error("Failed to forward input: relay closed")
        elif event.topic == self.topics.resize:
            msg = decode_resize(event.payload)
            if msg is None:
                return
            logger.info("Resize request: %dx%d", msg.cols, msg.rows)
            try:
                self.pty.resize(msg.rows, msg.cols)
            except OSError as e:
                logger.warning("Failed to resize PTY: %s", e)

    async def flush(self, timeout: float) -> None:
        """Wait up to ``timeout`` for the forwarders to drain a closed fan-out."""
        forwarders = [t for t in self._forwarders if not t.done()]
        if forwarders:
            await asyncio.wait(forwarders, timeout=timeout)
