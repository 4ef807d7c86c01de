"""Status tokens published by the agent on ``<root>/status``."""

from __future__ import annotations

import enum


class StatusToken(enum.StrEnum):
    """Advisory lifecycle tokens. Never acknowledged."""

    SHELL_READY = "shell_ready"
    SHELL_RESTARTING = "shell_restarting"
    SHELL_ERROR_RESTARTING = "shell_error_restarting"
    # Reserved: the controller ends its session on this token, but the
    # agent has no emission point for it.
    SHELL_EXITED = "shell_exited"


def parse_status(payload: bytes) -> StatusToken | None:
    """Decode a status payload; unknown tokens return None."""
    text = payload.decode("utf-8", errors="replace")
    try:
        return StatusToken(text)
    except ValueError:
        return None
