"""PTY session — one shell process attached to one pseudo-terminal pair."""

from __future__ import annotations

import enum
import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
import threading
import uuid
from dataclasses import dataclass, field
from typing import BinaryIO

from mqttshell.protocol.status import StatusToken
from mqttshell.pty.fanout import ShellFanout

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
DEFAULT_ROWS = 24
DEFAULT_COLS = 80


class PTYSpawnError(RuntimeError):
    """The OS could not allocate a PTY or spawn the shell. Not retried."""


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY session."""

    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"  # Read side saw end-of-stream / process exited
    ERRORED = "errored"  # Read side failed


def _set_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the slave end.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


@dataclass
class PTYSession:
    """A shell running in a fresh pseudo-terminal.

    One instance per shell epoch; it is never reused after the process
    exits. The session exclusively owns the child handle and the master
    descriptor. Blocking I/O happens on dedicated threads:

    - ``read_loop()`` on the reader thread forwards output to a
      :class:`ShellFanout` and reports lifecycle status tokens.
    - ``write()`` is called from the input relay's writer thread and is
      serialised by a lock held for exactly one write+flush.
    """

    command: list[str] = field(default_factory=lambda: ["/bin/bash", "-i"])
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    _master_fd: int = field(default=-1, init=False, repr=False)
    _writer: BinaryIO | None = field(default=None, init=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _proc: subprocess.Popen | None = field(default=None, init=False, repr=False)
    _reader: threading.Thread | None = field(default=None, init=False, repr=False)
    _status: PTYStatus = field(default=PTYStatus.CREATED, init=False)

    def open(self, initial_rows: int = DEFAULT_ROWS, initial_cols: int = DEFAULT_COLS) -> None:
        """Allocate the PTY pair and spawn the shell.

        Raises:
            PTYSpawnError: PTY allocation or process spawn failed.
        """
        if self._status is not PTYStatus.CREATED:
            raise RuntimeError(f"PTY session {self.id} was already opened")

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise PTYSpawnError(f"Failed to open pty: {e}") from e

        self._master_fd = master_fd
        self.resize(initial_rows, initial_cols)

        env = {**os.environ, **self.env}
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_set_controlling_tty,
                env=env,
                cwd=self.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            self._master_fd = -1
            raise PTYSpawnError(f"Failed to spawn shell {self.command!r}: {e}") from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        # Separate descriptor for the writer so closing it never races the reader.
        self._writer = os.fdopen(os.dup(master_fd), "wb")
        self._status = PTYStatus.RUNNING
        logger.info(
            "PTY session %s started: pid=%d cmd=%s",
            self.id,
            self._proc.pid,
            " ".join(self.command),
        )

    def read_loop(self, fanout: ShellFanout) -> None:
        """Forward PTY output to ``fanout`` until the stream ends.

        Blocking; run it on a dedicated thread (see ``start_reader``).
        End-of-stream reports ``shell_restarting``; a read error reports
        ``shell_error_restarting``.
        """
        while True:
            try:
                data = os.read(self._master_fd, READ_CHUNK)
            except OSError as e:
                # Linux reports a hung-up slave side as EIO on the master.
                if e.errno == errno.EIO:
                    data = b""
                else:
                    logger.error("Error reading PTY %s: %s", self.id, e)
                    self._status = PTYStatus.ERRORED
                    fanout.send_status(StatusToken.SHELL_ERROR_RESTARTING)
                    return

            if not data:
                logger.warning("Shell exited - signaling restart")
                self._status = PTYStatus.EXITED
                fanout.send_status(StatusToken.SHELL_RESTARTING)
                return

            fanout.send_output(data)

    def start_reader(self, fanout: ShellFanout) -> threading.Thread:
        """Run ``read_loop`` on a dedicated daemon thread."""
        if self._reader is not None:
            raise RuntimeError("reader thread already started")
        self._reader = threading.Thread(
            target=self.read_loop,
            args=(fanout,),
            name=f"pty-reader-{self.id}",
            daemon=True,
        )
        self._reader.start()
        return self._reader

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the shell, then flush.

        Raises:
            OSError: The PTY is gone or the write failed.
        """
        if self._writer is None:
            raise OSError(errno.EBADF, f"PTY session {self.id} is not open")
        with self._write_lock:
            self._writer.write(data)
            self._writer.flush()

    def resize(self, rows: int, cols: int) -> None:
        """Apply new window dimensions to the PTY."""
        fcntl.ioctl(
            self._master_fd,
            termios.TIOCSWINSZ,
            struct.pack("HHHH", rows, cols, 0, 0),
        )

    def size(self) -> tuple[int, int]:
        """Current ``(rows, cols)`` of the PTY."""
        packed = fcntl.ioctl(self._master_fd, termios.TIOCGWINSZ, b"\0" * 8)
        rows, cols, _, _ = struct.unpack("HHHH", packed)
        return rows, cols

    def wait(self) -> int:
        """Block until the shell process exits. Returns its exit code."""
        if self._proc is None:
            raise RuntimeError(f"PTY session {self.id} was never opened")
        code = self._proc.wait()
        logger.info("PTY session %s exited (code=%s)", self.id, code)
        return code

    def kill(self) -> None:
        """Kill the shell's whole process group.

        Also after the shell itself has exited: background jobs it left behind
        stay in the group and hold the slave end open.
        """
        if self._proc is None:
            return
        try:
            # start_new_session makes the shell a group leader, so pgid == pid.
            os.killpg(self._proc.pid, signal.SIGKILL)
            logger.info("Killed PTY session %s (pgid=%d)", self.id, self._proc.pid)
        except (ProcessLookupError, PermissionError):
            logger.debug("Process group already gone: %d", self._proc.pid)
        self._proc.wait()

    def close(self) -> None:
        """Kill the process if still alive and release the descriptors."""
        self.kill()
        if self._writer is not None:
            with self._write_lock:
                try:
                    self._writer.close()
                except OSError:
                    pass
                self._writer = None
        if self._master_fd >= 0:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = -1

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def status(self) -> PTYStatus:
        return self._status

    @property
    def alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None
