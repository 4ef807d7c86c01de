"""Resize watcher — polls the local terminal and reports size changes."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Callable

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2
FALLBACK_SIZE = (80, 24)


def read_terminal_size(fd: int | None = None) -> tuple[int, int] | None:
    """Return ``(cols, rows)`` of the terminal on ``fd`` (stdout by default)."""
    try:
        if fd is None:
            fd = sys.stdout.fileno()
        size = os.get_terminal_size(fd)
    except (OSError, ValueError):
        return None
    return size.columns, size.lines


def terminal_size(fd: int | None = None) -> tuple[int, int]:
    """Like ``read_terminal_size`` but falls back to 80x24."""
    return read_terminal_size(fd) or FALLBACK_SIZE


class ResizeWatcher:
    """Publish the terminal size whenever it changes.

    At most one message per poll interval, however fast the window is dragged.
    """

    def __init__(
        self,
        publish: Callable[[int, int], object],
        get_size: Callable[[], tuple[int, int] | None] = read_terminal_size,
        interval: float = POLL_INTERVAL,
        initial: tuple[int, int] | None = None,
    ) -> None:
        self._publish = publish
        self._get_size = get_size
        self.interval = interval
        self.last = initial

    def poll(self) -> bool:
        """Check once; publish ``(rows, cols)`` if the size changed."""
        size = self._get_size()
        if size is None or size == self.last:
            return False
        self.last = size
        cols, rows = size
        logger.debug("Local terminal resized to %dx%d", cols, rows)
        self._publish(rows, cols)
        return True

    async def run(self) -> None:
        if self.last is None:
            self.last = self._get_size()
        while True:
            await asyncio.sleep(self.interval)
            self.poll()
