"""Topic layout for one shell channel."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Topics:
    """The four topics derived from a channel root.

    Both peers must be configured with the same root; there is no discovery.

        <root>/in      controller -> agent, raw input bytes
        <root>/out     agent -> controller, raw PTY output
        <root>/status  agent -> controller, UTF-8 status token
        <root>/resize  controller -> agent, JSON {"rows", "cols"}
    """

    root: str

    @property
    def input(self) -> str:
        return f"{self.root}/in"

    @property
    def output(self) -> str:
        return f"{self.root}/out"

    @property
    def status(self) -> str:
        return f"{self.root}/status"

    @property
    def resize(self) -> str:
        return f"{self.root}/resize"
