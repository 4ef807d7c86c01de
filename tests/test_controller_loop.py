"""Tests for mqttshell.controller.loop.ControllerTransport."""

from __future__ import annotations

import asyncio
import io

import pytest

from conftest import REFUSE, FakeBroker, RecordingSleep, StopRetrying
from mqttshell.config import BrokerConfig
from mqttshell.controller.loop import ControllerTransport
from mqttshell.protocol.topics import Topics
from mqttshell.transport.link import BrokerEvent, BrokerEventType


class Harness:
    def __init__(self, broker: FakeBroker | None = None, sleep: RecordingSleep | None = None):
        self.stdout = io.BytesIO()
        self.exits = 0
        self.size = (120, 40)
        self.transport = ControllerTransport(
            broker=BrokerConfig(),
            topics=Topics("shell"),
            stdout=self.stdout,
            terminal_size=lambda: self.size,
            on_exit=self._on_exit,
            link_factory=broker or FakeBroker(),
            sleep=sleep,
        )

    def _on_exit(self) -> None:
        self.exits += 1

    def deliver(self, topic: str, payload: bytes) -> None:
        self.transport.handle_event(BrokerEvent(BrokerEventType.PUBLISH, topic, payload))


# ---------------------------------------------------------------------------
# Inbound handling
# ---------------------------------------------------------------------------


class TestControllerHandleEvent:
    def test_output_written_verbatim(self) -> None:
        h = Harness()
        h.deliver("shell/out", b"\x1b[1mbold\x1b[0m")
        h.deliver("shell/out", b"\xe2\x9c")
        assert h.stdout.getvalue() == b"\x1b[1mbold\x1b[0m\xe2\x9c"

    def test_shell_exited_ends_session(self) -> None:
        h = Harness()
        h.deliver("shell/status", b"shell_exited")
        assert h.exits == 1

    @pytest.mark.parametrize(
        "token", [b"shell_ready", b"shell_restarting", b"shell_error_restarting", b"??"]
    )
    def test_other_status_only_logged(self, token: bytes) -> None:
        h = Harness()
        h.deliver("shell/status", token)
        assert h.exits == 0
        assert h.stdout.getvalue() == b""

    def test_unknown_topic_ignored(self) -> None:
        h = Harness()
        h.deliver("shell/other", b"x")
        assert h.stdout.getvalue() == b""
        assert h.exits == 0


# ---------------------------------------------------------------------------
# Outbound publishing
# ---------------------------------------------------------------------------


class TestControllerPublish:
    def test_dropped_while_not_connected(self) -> None:
        h = Harness()
        assert not h.transport.ready
        assert h.transport.send_input(b"ls") is False
        assert h.transport.send_resize(40, 120) is False

    def test_ready_flow(self, fake_broker: FakeBroker) -> None:
        h = Harness(fake_broker)

        async def run() -> None:
            task = asyncio.create_task(h.transport.run())
            await asyncio.wait_for(fake_broker.serving.wait(), 2)
            assert h.transport.ready
            assert h.transport.send_input(b"ls\r")
            assert h.transport.send_resize(50, 132)
            fake_broker.current.inject("shell/out", b"file.txt\r\n")
            await asyncio.sleep(0.01)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(run())
        link = fake_broker.links[0]
        assert link.client_id == "controller"
        assert link.subscriptions == ["shell/out", "shell/status"]
        assert fake_broker.published == [
            ("shell/resize", b'{"rows":40,"cols":120}'),
            ("shell/in", b"ls\r"),
            ("shell/resize", b'{"rows":50,"cols":132}'),
        ]
        assert h.stdout.getvalue() == b"file.txt\r\n"
        assert not h.transport.ready

    def test_publish_error_reports_drop(self, fake_broker: FakeBroker) -> None:
        h = Harness(fake_broker)

        async def run() -> None:
            task = asyncio.create_task(h.transport.run())
            await asyncio.wait_for(fake_broker.serving.wait(), 2)
            fake_broker.current.fail_publish = True
            assert h.transport.send_input(b"x") is False
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(run())

    def test_initial_resize_sent_on_every_connect(self, fake_broker: FakeBroker) -> None:
        h = Harness(fake_broker, RecordingSleep())

        async def run() -> None:
            task = asyncio.create_task(h.transport.run())
            await asyncio.wait_for(fake_broker.serving.wait(), 2)
            fake_broker.serving.clear()
            h.size = (100, 30)
            fake_broker.current.drop()
            await asyncio.wait_for(fake_broker.serving.wait(), 2)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(run())
        assert fake_broker.published_on("shell/resize") == [
            b'{"rows":40,"cols":120}',
            b'{"rows":30,"cols":100}',
        ]

    def test_backoff_while_broker_down(self, fake_broker: FakeBroker) -> None:
        fake_broker.script = [REFUSE] * 10
        sleep = RecordingSleep(limit=4)
        h = Harness(fake_broker, sleep)

        with pytest.raises(StopRetrying):
            asyncio.run(h.transport.run())
        assert sleep.delays == [1, 2, 4, 8]
