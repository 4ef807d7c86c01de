"""Agent orchestrator — runs shell epochs back to back, forever.

One epoch = one shell process. Everything that touches the shell is built
fresh per epoch (PTY session, fan-out, input relay, transport loop) and torn
down when the process exits:

    open PTY -> shell_ready -> reader/writer threads -> transport task
    -> wait for exit -> flush status -> cancel transport -> settle -> repeat
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from mqttshell.agent.loop import AgentTransport
from mqttshell.config import MqttShellConfig
from mqttshell.protocol.status import StatusToken
from mqttshell.protocol.topics import Topics
from mqttshell.pty.fanout import ShellFanout
from mqttshell.pty.relay import InputRelay
from mqttshell.pty.session import PTYSession
from mqttshell.transport.backoff import Backoff

logger = logging.getLogger(__name__)

# Upper bound for the reader thread to report end-of-stream after exit,
# and for the status forwarder to publish it before the transport is cancelled.
EXIT_FLUSH_TIMEOUT = 1.0

TransportFactory = Callable[..., AgentTransport]


class AgentOrchestrator:
    """Owns the restart loop around :class:`PTYSession` and :class:`AgentTransport`."""

    def __init__(
        self,
        config: MqttShellConfig,
        session_factory: Callable[[], PTYSession] | None = None,
        transport_factory: TransportFactory = AgentTransport,
    ) -> None:
        self.config = config
        self.topics = Topics(config.channel)
        self._session_factory = session_factory or self._default_session
        self._transport_factory = transport_factory
        self.epochs = 0

    def _default_session(self) -> PTYSession:
        return PTYSession(command=self.config.agent.command, env=self.config.agent.env)

    async def run_forever(self) -> None:
        """Restart the shell epoch indefinitely.

        Raises:
            PTYSpawnError: The OS refused a PTY or process. Not retried.
        """
        delay = self.config.agent.restart_delay
        while True:
            await self.run_epoch()
            logger.info("Shell exited, restarting in %g seconds...", delay)
            await asyncio.sleep(delay)

    async def run_epoch(self) -> int:
        """Run one shell from spawn to exit. Returns the exit code."""
        self.epochs += 1
        logger.info("Creating new shell instance...")

        fanout = ShellFanout()
        relay = InputRelay()
        session = self._session_factory()
        session.open(self.config.agent.rows, self.config.agent.cols)
        logger.info("Shell started in PTY")

        # Nobody is subscribed yet, so this token is dropped by the fan-out.
        fanout.send_status(StatusToken.SHELL_READY)

        reader = session.start_reader(fanout)
        relay.start(session.write, name=f"pty-writer-{session.id}")

        transport = self._transport_factory(
            broker=self.config.broker,
            topics=self.topics,
            fanout=fanout,
            relay=relay,
            pty=session,
            backoff=Backoff(self.config.backoff.initial, self.config.backoff.cap),
        )
        # The task handle is this epoch's cancellation token.
        transport_task = asyncio.create_task(transport.run(), name="agent-transport")
        exit_waiter = asyncio.ensure_future(asyncio.to_thread(session.wait))
        try:
            done, _ = await asyncio.wait(
                {exit_waiter, transport_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if transport_task in done:
                # run() only returns by raising; surface the bug.
                transport_task.result()
            code = exit_waiter.result()

            await asyncio.to_thread(reader.join, EXIT_FLUSH_TIMEOUT)
            relay.close()
            fanout.close()
            await transport.flush(EXIT_FLUSH_TIMEOUT)
            return code
        finally:
            transport_task.cancel()
            await asyncio.gather(transport_task, return_exceptions=True)
            relay.close()
            fanout.close()
            session.close()
            await asyncio.gather(exit_waiter, return_exceptions=True)
