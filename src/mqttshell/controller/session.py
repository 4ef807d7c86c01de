"""Controller session — raw-mode keyboard in, remote shell out."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import BinaryIO, Callable

from prompt_toolkit.input import Input, create_input

from mqttshell.config import MqttShellConfig
from mqttshell.controller.keys import encode_key, is_quit
from mqttshell.controller.loop import ControllerTransport
from mqttshell.controller.resize import ResizeWatcher, read_terminal_size, terminal_size
from mqttshell.protocol.topics import Topics
from mqttshell.transport.backoff import Backoff

logger = logging.getLogger(__name__)


class TerminalSetupError(RuntimeError):
    """The local terminal cannot be switched to raw input mode."""


class ControllerSession:
    """Runs until Ctrl+Q or a ``shell_exited`` status from the agent.

    There is no outer restart loop: the controller has no local shell to
    restart, only its broker connection, which the transport re-establishes
    on its own.
    """

    def __init__(
        self,
        config: MqttShellConfig,
        input_factory: Callable[[], Input] = create_input,
        stdout: BinaryIO | None = None,
    ) -> None:
        self.config = config
        self.topics = Topics(config.channel)
        self._input_factory = input_factory
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stop: asyncio.Event | None = None
        self.transport: ControllerTransport | None = None

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    def _on_keys(self, inp: Input) -> None:
        assert self.transport is not None
        for key_press in inp.read_keys():
            if is_quit(key_press):
                self.stop()
                return
            data = encode_key(key_press)
            if data:
                self.transport.send_input(data)

    async def run(self) -> None:
        """Drive the session.

        Raises:
            TerminalSetupError: stdin is not a terminal.
        """
        try:
            interactive = os.isatty(sys.stdin.fileno())
        except (OSError, ValueError):
            interactive = False
        if not interactive:
            raise TerminalSetupError("stdin is not a terminal; raw mode is unavailable")

        self._stop = asyncio.Event()
        self.transport = ControllerTransport(
            broker=self.config.broker,
            topics=self.topics,
            stdout=self._stdout,
            terminal_size=terminal_size,
            on_exit=self.stop,
            backoff=Backoff(self.config.backoff.initial, self.config.backoff.cap),
        )
        watcher = ResizeWatcher(
            publish=self.transport.send_resize,
            get_size=read_terminal_size,
            interval=self.config.controller.resize_interval,
            initial=terminal_size(),
        )

        inp = self._input_factory()
        with inp.raw_mode(), inp.attach(lambda: self._on_keys(inp)):
            tasks = [
                asyncio.create_task(self.transport.run(), name="controller-transport"),
                asyncio.create_task(watcher.run(), name="resize-watcher"),
            ]
            stop_waiter = asyncio.create_task(self._stop.wait())
            try:
                done, _ = await asyncio.wait(
                    {stop_waiter, *tasks}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in tasks:
                    if task in done:
                        task.result()
            finally:
                for task in (stop_waiter, *tasks):
                    task.cancel()
                await asyncio.gather(stop_waiter, *tasks, return_exceptions=True)
