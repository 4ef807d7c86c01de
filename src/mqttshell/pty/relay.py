"""Input relay — inbound bytes from the broker into the PTY writer thread."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable

logger = logging.getLogger(__name__)

_STOP = None


class InputRelay:
    """Unbounded, ordered, single-consumer queue feeding one writer thread.

    ``put()`` never blocks: the broker callback path must not stall on a slow
    shell. Growth is unbounded under pathological load; that is accepted.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[bytes | None] = queue.SimpleQueue()
        self._closed = False
        self._thread: threading.Thread | None = None

    def put(self, data: bytes) -> bool:
        """Enqueue ``data``. Returns False if the relay is closed."""
        if self._closed:
            return False
        self._queue.put(data)
        return True

    def get(self, timeout: float | None = None) -> bytes | None:
        """Block until the next payload; None means the relay was closed."""
        return self._queue.get(timeout=timeout)

    def start(self, write: Callable[[bytes], None], name: str = "pty-writer") -> threading.Thread:
        """Start the dedicated writer thread.

        ``write`` is called once per payload, in order. If it raises
        ``OSError`` the thread ends; the read side is left alone and will
        observe the process exit on its own.
        """
        if self._thread is not None:
            raise RuntimeError("writer thread already started")
        self._thread = threading.Thread(
            target=self._drain, args=(write,), name=name, daemon=True
        )
        self._thread.start()
        return self._thread

    def _drain(self, write: Callable[[bytes], None]) -> None:
        while True:
            data = self.get()
            if data is _STOP:
                break
            try:
                write(data)
            except OSError as e:
                logger.error("Error writing to PTY: %s", e)
                break
        logger.debug("PTY writer thread finished")

    def close(self) -> None:
        """Stop the writer after everything already queued."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)

    @property
    def closed(self) -> bool:
        return self._closed
