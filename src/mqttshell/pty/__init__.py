"""PTY side of the agent — the shell session and its I/O channels.

The reader and writer threads never touch the network: output and status
leave through a lossy :class:`ShellFanout`, input arrives through an
:class:`InputRelay`.
"""

from mqttshell.pty.fanout import Broadcast, ChannelClosed, ShellFanout, Subscription
from mqttshell.pty.relay import InputRelay
from mqttshell.pty.session import PTYSession, PTYSpawnError, PTYStatus

__all__ = [
    "Broadcast",
    "ChannelClosed",
    "ShellFanout",
    "Subscription",
    "InputRelay",
    "PTYSession",
    "PTYSpawnError",
    "PTYStatus",
]
