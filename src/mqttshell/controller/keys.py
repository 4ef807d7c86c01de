"""Key encoder — local key presses to the bytes a VT100 terminal would send."""

from __future__ import annotations

from prompt_toolkit.key_binding.key_processor import KeyPress
from prompt_toolkit.keys import Keys

# Ends the local session; never forwarded.
QUIT_KEY = Keys.ControlQ

ESC = b"\x1b"

KEY_SEQUENCES: dict[Keys, bytes] = {
    Keys.ControlC: b"\x03",
    Keys.ControlZ: b"\x1a",
    Keys.Enter: b"\r",
    Keys.Backspace: b"\x7f",
    Keys.Tab: b"\t",
    Keys.Up: ESC + b"[A",
    Keys.Down: ESC + b"[B",
    Keys.Right: ESC + b"[C",
    Keys.Left: ESC + b"[D",
    Keys.Home: ESC + b"[H",
    Keys.End: ESC + b"[F",
    Keys.PageUp: ESC + b"[5~",
    Keys.PageDown: ESC + b"[6~",
    Keys.Delete: ESC + b"[3~",
    Keys.Insert: ESC + b"[2~",
    Keys.F1: ESC + b"OP",
    Keys.F2: ESC + b"OQ",
    Keys.F3: ESC + b"OR",
    Keys.F4: ESC + b"OS",
    Keys.F5: ESC + b"[15~",
    Keys.F6: ESC + b"[17~",
    Keys.F7: ESC + b"[18~",
    Keys.F8: ESC + b"[19~",
    Keys.F9: ESC + b"[20~",
    Keys.F10: ESC + b"[21~",
    Keys.F11: ESC + b"[23~",
    Keys.F12: ESC + b"[24~",
}

# prompt_toolkit reports modified editing and navigation keys as distinct
# keys; whatever the modifier, they send the same sequence as the bare key.
_NAVIGATION = (
    "Up", "Down", "Right", "Left", "Home", "End", "Insert", "Delete", "PageUp", "PageDown",
)
for _base in _NAVIGATION:
    for _prefix in ("Shift", "Control", "ControlShift"):
        KEY_SEQUENCES[Keys[_prefix + _base]] = KEY_SEQUENCES[Keys[_base]]

for _n in range(1, 13):
    KEY_SEQUENCES[Keys[f"ControlF{_n}"]] = KEY_SEQUENCES[Keys[f"F{_n}"]]


def is_quit(key_press: KeyPress) -> bool:
    return key_press.key == QUIT_KEY


def encode_key(key_press: KeyPress) -> bytes | None:
    """Map a key press to its outbound bytes, or None to drop it.

    Printable characters (shifted or not) arrive as the character itself and
    are sent UTF-8 encoded. Named keys go through ``KEY_SEQUENCES``; every
    other key, including Ctrl+Q and unlisted control chords, is dropped.
    """
    key = key_press.key
    if isinstance(key, Keys):
        return KEY_SEQUENCES.get(key)
    if len(key) == 1 and key.isprintable():
        return key.encode("utf-8")
    return None
