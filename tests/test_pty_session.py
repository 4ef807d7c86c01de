"""Tests for mqttshell.pty.session.PTYSession against a real /bin/sh."""

from __future__ import annotations

import asyncio

import pytest

from mqttshell.pty.fanout import ShellFanout
from mqttshell.pty.session import PTYSession, PTYSpawnError, PTYStatus


async def collect(session: PTYSession) -> tuple[bytes, list[str]]:
    """Run the reader until end-of-stream; return (output, status tokens)."""
    fanout = ShellFanout()
    output = fanout.output.subscribe()
    status = fanout.status.subscribe()
    reader = session.start_reader(fanout)
    await asyncio.to_thread(reader.join, 5)
    fanout.close()
    data = b"".join([chunk async for chunk in output])
    tokens = [token async for token in status]
    return data, tokens


class TestPTYSessionLifecycle:
    def test_open_and_exit(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "printf ready; sleep 0.2; exit 7"])
        assert session.status is PTYStatus.CREATED
        session.open()
        try:
            assert session.pid is not None
            data, tokens = asyncio.run(collect(session))
            assert session.wait() == 7
        finally:
            session.close()
        assert b"ready" in data
        assert tokens == ["shell_restarting"]
        assert session.status is PTYStatus.EXITED
        assert not session.alive

    def test_spawn_failure(self) -> None:
        session = PTYSession(command=["/nonexistent/shell-binary"])
        with pytest.raises(PTYSpawnError):
            session.open()

    def test_open_twice_rejected(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "exit 0"])
        session.open()
        try:
            with pytest.raises(RuntimeError):
                session.open()
        finally:
            session.close()

    def test_env_passed_to_shell(self) -> None:
        session = PTYSession(
            command=["/bin/sh", "-c", 'printf "%s" "$TERM"; sleep 0.2'],
            env={"TERM": "xterm-256color"},
        )
        session.open()
        try:
            data, _ = asyncio.run(collect(session))
        finally:
            session.close()
        assert b"xterm-256color" in data

    def test_kill(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "sleep 30"])
        session.open()
        assert session.alive
        session.kill()
        assert not session.alive
        session.close()

    def test_kill_reaches_leftover_background_jobs(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "trap '' HUP; sleep 30 & exit 0"])
        session.open()
        reader = session.start_reader(ShellFanout())
        try:
            assert session.wait() == 0
            # The sleep ignores the hangup and still holds the terminal open.
            reader.join(0.3)
            assert reader.is_alive()
            session.kill()
            reader.join(2)
            assert not reader.is_alive()
            assert session.status is PTYStatus.EXITED
        finally:
            session.close()


class TestPTYSessionSize:
    def test_initial_size(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "sleep 5"])
        session.open(initial_rows=30, initial_cols=100)
        try:
            assert session.size() == (30, 100)
        finally:
            session.close()

    def test_resize(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "sleep 5"])
        session.open()
        try:
            assert session.size() == (24, 80)
            session.resize(40, 120)
            assert session.size() == (40, 120)
        finally:
            session.close()

    def test_shell_sees_window_size(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "stty size; sleep 0.2"])
        session.open(initial_rows=40, initial_cols=120)
        try:
            data, _ = asyncio.run(collect(session))
        finally:
            session.close()
        assert b"40 120" in data


class TestPTYSessionIO:
    def test_write_reaches_shell(self) -> None:
        session = PTYSession(command=["/bin/sh", "-c", "read line; printf 'got:%s' \"$line\""])
        session.open()
        try:
            session.write(b"hello\n")
            data, tokens = asyncio.run(collect(session))
        finally:
            session.close()
        assert b"got:hello" in data
        assert tokens == ["shell_restarting"]

    def test_write_when_not_open(self) -> None:
        session = PTYSession()
        with pytest.raises(OSError):
            session.write(b"x")
