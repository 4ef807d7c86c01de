"""Controller transport loop — renders the remote shell and sends input."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import BinaryIO, Callable

from mqttshell.config import BrokerConfig
from mqttshell.protocol.resize import encode_resize
from mqttshell.protocol.status import StatusToken, parse_status
from mqttshell.protocol.topics import Topics
from mqttshell.transport.backoff import Backoff, reconnect_policy
from mqttshell.transport.link import BrokerError, BrokerEvent, BrokerEventType, BrokerLink

logger = logging.getLogger(__name__)

LinkFactory = Callable[[str, int, str, int], BrokerLink]


class ControllerTransport:
    """Same reconnect/backoff shape as the agent, for the controller's lifetime.

    Each connection: ``connect -> subscribe(out) -> subscribe(status) ->
    ready``. On ready the current terminal size is published before any
    traffic is handled, so the agent's PTY matches the local window.

    Outbound input and resize messages are dropped while no connection is
    ready; delivery is at most once anyway.
    """

    def __init__(
        self,
        broker: BrokerConfig,
        topics: Topics,
        stdout: BinaryIO,
        terminal_size: Callable[[], tuple[int, int]],
        on_exit: Callable[[], None],
        backoff: Backoff | None = None,
        link_factory: LinkFactory = BrokerLink,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.broker = broker
        self.topics = topics
        self.stdout = stdout
        self.backoff = backoff or Backoff()
        self._terminal_size = terminal_size
        self._on_exit = on_exit
        self._link_factory = link_factory
        self._sleep = sleep
        self._link: BrokerLink | None = None

    @property
    def ready(self) -> bool:
        return self._link is not None

    async def run(self) -> None:
        """Reconnect until cancelled."""
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
            self.broker.controller_client_id,
            self.broker.keepalive,
        )
        async with link:
            await link.connect()
            await link.subscribe(self.topics.output)
            await link.subscribe(self.topics.status)
            logger.info(
                "Controller subscribed to %s and %s",
                self.topics.output,
                self.topics.status,
            )
            self.backoff.reset()

            cols, rows = self._terminal_size()
            link.publish(self.topics.resize, encode_resize(rows, cols))

            self._link = link
            try:
                async for event in link.events():
                    self.handle_event(event)
            finally:
                self._link = None

    def handle_event(self, event: BrokerEvent) -> None:
        if event.type is BrokerEventType.CONNACK:
            logger.debug("Connected to MQTT broker")
            return

        if event.topic == self.topics.output:
            self.stdout.write(event.payload)
            self.stdout.flush()
        elif event.topic == self.topics.status:
            token = parse_status(event.payload)
            logger.info("Status received: '%s'", event.payload.decode("utf-8", "replace"))
            if token is StatusToken.SHELL_EXITED:
                self._on_exit()
        else:
            logger.warning("Unknown topic: '%s'", event.topic)

    def _publish(self, topic: str, payload: bytes) -> bool:
        link = self._link
        if link is None:
            return False
        try:
            link.publish(topic, payload)
        except BrokerError as e:
            logger.debug("Dropped message for %s: %s", topic, e)
            return False
        return True

    def send_input(self, data: bytes) -> bool:
        """Publish raw input bytes. Returns False if the bytes were dropped."""
        return self._publish(self.topics.input, data)

    def send_resize(self, rows: int, cols: int) -> bool:
        return self._publish(self.topics.resize, encode_resize(rows, cols))
