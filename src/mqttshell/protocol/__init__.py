"""Tunnel protocol — topic layout, status tokens, and the resize codec."""

from mqttshell.protocol.resize import ResizeMessage, decode_resize, encode_resize
from mqttshell.protocol.status import StatusToken, parse_status
from mqttshell.protocol.topics import Topics

__all__ = [
    "ResizeMessage",
    "decode_resize",
    "encode_resize",
    "StatusToken",
    "parse_status",
    "Topics",
]
