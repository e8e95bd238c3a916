# /mdfinder/terminal.py
"""
POSIX raw-mode keyboard input.
Bytes are read without blocking past the poll timeout and decoded into Key
values one at a time; anything left over waits for the next call.
"""
from __future__ import annotations

import os
import select
import sys
import termios
import tty

from .keymap import Key

_ESC = 0x1B
_ARROWS = {b"A": "up", b"B": "down"}
_SINGLE_BYTE_KEYS = {
    0x0D: "enter",
    0x0A: "enter",
    0x09: "tab",
    0x7F: "backspace",
    0x08: "backspace",
}


def _utf8_length(lead: int) -> int:
    if lead < 0x80:
        return 1
    if lead >> 5 == 0b110:
        return 2
    if lead >> 4 == 0b1110:
        return 3
    if lead >> 3 == 0b11110:
        return 4
    return 1


def decode_key(buf: bytes) -> tuple[Key | None, int]:
    """
    Decodes the first key in `buf`. Returns (key, consumed); consumed is 0
    when the buffer ends in the middle of a character and more input is needed.
    Unrecognized sequences are consumed and reported as None.
    """
    if not buf:
        return None, 0
    first = buf[0]

    if first == _ESC:
        if len(buf) == 1:
            return Key(name="esc"), 1
        second = buf[1:2]
        if second in (b"[", b"O"):
            if len(buf) < 3:
                return None, 0
            name = _ARROWS.get(buf[2:3])
            if name is not None:
                return Key(name=name), 3
            end = 2
            while end < len(buf) and not (0x40 <= buf[end] <= 0x7E):
                end += 1
            return None, min(len(buf), end + 1)
        if second[0] == _ESC:
            return Key(name="esc"), 1
        key, consumed = decode_key(buf[1:])
        if consumed == 0:
            return None, 0
        if key is not None and key.name == "char":
            return Key(name="char", char=key.char, alt=True), consumed + 1
        return key, consumed + 1

    name = _SINGLE_BYTE_KEYS.get(first)
    if name is not None:
        return Key(name=name), 1
    if 0x01 <= first <= 0x1A:
        return Key(name="char", char=chr(first + 0x60), ctrl=True), 1
    if first < 0x20:
        return None, 1

    size = _utf8_length(first)
    if len(buf) < size:
        return None, 0
    try:
        ch = buf[:size].decode("utf-8")
    except UnicodeDecodeError:
        return None, size
    return Key(name="char", char=ch), size


class TerminalKeys:
    """Context manager that puts stdin into raw mode and yields decoded keys."""

    def __init__(self, stream=None):
        self._stream = stream if stream is not None else sys.stdin
        self._fd = self._stream.fileno()
        self._saved = None
        self._pending = b""

    def __enter__(self) -> "TerminalKeys":
        self._saved = termios.tcgetattr(self._fd)
        tty.setraw(self._fd)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None
        return False

    def suspend(self):
        """Restores cooked mode, e.g. while an editor owns the terminal."""
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)

    def resume(self):
        if self._saved is not None:
            tty.setraw(self._fd)

    def read_key(self, timeout: float) -> Key | None:
        """Returns the next key press, or None when nothing arrived within timeout."""
        while True:
            if self._pending:
                key, consumed = decode_key(self._pending)
                if consumed:
                    self._pending = self._pending[consumed:]
                    if key is not None:
                        return key
                    continue
            ready, _, _ = select.select([self._fd], [], [], timeout)
            if not ready:
                return None
            chunk = os.read(self._fd, 64)
            if not chunk:
                return None
            self._pending += chunk
