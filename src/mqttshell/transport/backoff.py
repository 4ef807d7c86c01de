"""Reconnect backoff — an explicit delay value threaded through the retry loop."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type
from tenacity.wait import wait_base

from mqttshell.transport.link import BrokerError

logger = logging.getLogger(__name__)

INITIAL_DELAY = 1.0
MAX_DELAY = 30.0


class Backoff(wait_base):
    """Doubling reconnect delay with a cap.

    Consecutive failures yield ``1, 2, 4, 8, 16, 30, 30, ...``; ``reset()``
    (called after a successful subscribe) brings the next delay back to the
    initial value. The state lives in this object, owned by one reconnect
    loop, rather than in tenacity's attempt counter, so that a success in
    the middle of an attempt can reset it.

    Usable directly as a tenacity ``wait`` strategy.
    """

    def __init__(self, initial: float = INITIAL_DELAY, cap: float = MAX_DELAY) -> None:
        if initial <= 0 or cap < initial:
            raise ValueError("need 0 < initial <= cap")
        self.initial = initial
        self.cap = cap
        self.delay = initial

    def reset(self) -> None:
        self.delay = self.initial

    def next_delay(self) -> float:
        """Return the delay to apply now and double the stored one."""
        delay = self.delay
        self.delay = min(self.delay * 2, self.cap)
        return delay

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.next_delay()

    def __repr__(self) -> str:
        return f"Backoff(delay={self.delay}, initial={self.initial}, cap={self.cap})"


def _log_reconnect(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning("%s; reconnecting in %.0f seconds...", exc, delay)


def reconnect_policy(
    backoff: Backoff,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """Retry forever on :class:`BrokerError`, waiting ``backoff`` between tries.

    Anything else (including cancellation) propagates immediately.
    """
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return AsyncRetrying(
        wait=backoff,
        retry=retry_if_exception_type(BrokerError),
        before_sleep=_log_reconnect,
        reraise=True,
        **kwargs,
    )
