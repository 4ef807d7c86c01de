"""Controller side — key encoding, resize polling, and the broker transport."""

from mqttshell.controller.keys import QUIT_KEY, encode_key, is_quit
from mqttshell.controller.loop import ControllerTransport
from mqttshell.controller.resize import ResizeWatcher, terminal_size
from mqttshell.controller.session import ControllerSession, TerminalSetupError

__all__ = [
    "QUIT_KEY",
    "encode_key",
    "is_quit",
    "ControllerTransport",
    "ResizeWatcher",
    "terminal_size",
    "ControllerSession",
    "TerminalSetupError",
]
