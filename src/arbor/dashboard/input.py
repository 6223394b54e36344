"""Decoding raw terminal input into keys and mouse events.

Keys are returned as strings: printable characters as themselves, special
keys as their escape sequence (see the KEY_* constants). Mouse reports in
SGR format (``ESC [ < button ; col ; row M|m``) become MouseEvent values
with 1-based coordinates.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from enum import Enum

KEY_UP = "\x1b[A"
KEY_DOWN = "\x1b[B"
KEY_RIGHT = "\x1b[C"
KEY_LEFT = "\x1b[D"
KEY_SHIFT_UP = "\x1b[1;2A"
KEY_SHIFT_DOWN = "\x1b[1;2B"
KEY_ENTER = "\r"
KEY_ESCAPE = "\x1b"
KEY_BACKSPACE = "\x7f"
KEY_CTRL_U = "\x15"

# Alternative encodings some terminals send for the same key
_ALIASES = {
    "\n": KEY_ENTER,
    "\x08": KEY_BACKSPACE,
    "\x1bOA": KEY_UP,
    "\x1bOB": KEY_DOWN,
    "\x1bOC": KEY_RIGHT,
    "\x1bOD": KEY_LEFT,
    "\x1b[a": KEY_SHIFT_UP,
    "\x1b[b": KEY_SHIFT_DOWN,
}

_SGR_MOUSE_RE = re.compile(r"<(\d+);(\d+);(\d+)([Mm])")

WHEEL_FLAG = 64
MOTION_FLAG = 32
# shift/meta/ctrl bits
MODIFIER_MASK = 4 | 8 | 16


class MouseKind(Enum):
    PRESS = "press"
    RELEASE = "release"
    DRAG = "drag"
    SCROLL_UP = "scroll-up"
    SCROLL_DOWN = "scroll-down"


@dataclass(frozen=True)
class MouseEvent:
    kind: MouseKind
    button: int  # 0 left, 1 middle, 2 right
    col: int
    row: int


InputEvent = str | MouseEvent


def decode_sgr_mouse(params: str) -> MouseEvent | None:
    """Decode the body of an SGR mouse report, e.g. '<0;12;5M'."""
    match = _SGR_MOUSE_RE.fullmatch(params)
    if not match:
        return None
    code = int(match.group(1)) & ~MODIFIER_MASK
    col = int(match.group(2))
    row = int(match.group(3))
    released = match.group(4) == "m"

    if code & WHEEL_FLAG:
        kind = MouseKind.SCROLL_DOWN if code & 1 else MouseKind.SCROLL_UP
        return MouseEvent(kind, -1, col, row)

    button = code & 3
    if released:
        kind = MouseKind.RELEASE
    elif code & MOTION_FLAG:
        kind = MouseKind.DRAG
    else:
        kind = MouseKind.PRESS
    return MouseEvent(kind, button, col, row)


def _is_csi_final(ch: str) -> bool:
    return "\x40" <= ch <= "\x7e"


class InputDecoder:
    """Incremental decoder; bytes may arrive split across reads.

    A trailing lone ESC is held back because it may start a sequence.
    Call flush() once no more input has arrived for a short while to
    release it as a plain Escape key press.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def feed(self, data: bytes) -> list[InputEvent]:
        self._pending += self._utf8.decode(data)
        events: list[InputEvent] = []
        while self._pending:
            consumed, event = self._next(self._pending)
            if consumed == 0:
                break
            self._pending = self._pending[consumed:]
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[InputEvent]:
        """Release held-back input as individual keys."""
        pending, self._pending = self._pending, ""
        if not pending:
            return []
        # Only escape sequences are ever held back; an incomplete one is
        # reported as the Escape key and the fragment dropped
        return [KEY_ESCAPE]

    def _next(self, buf: str) -> tuple[int, InputEvent | None]:
        """Decode one event from the head of buf.

        Returns (0, None) when more input is needed.
        """
        ch = buf[0]
        if ch != "\x1b":
            return 1, _ALIASES.get(ch, ch)

        if len(buf) == 1:
            return 0, None

        second = buf[1]
        if second == "[":
            return self._csi(buf)
        if second == "O":
            if len(buf) < 3:
                return 0, None
            seq = buf[:3]
            return 3, _ALIASES.get(seq, seq)
        if second == "\x1b":
            # Double escape: the first one stands alone
            return 1, KEY_ESCAPE
        # Alt+key
        return 2, buf[:2]

    def _csi(self, buf: str) -> tuple[int, InputEvent | None]:
        # Legacy X10 mouse report: ESC [ M Cb Cx Cy; not requested, so dropped
        if buf.startswith("\x1b[M"):
            if len(buf) < 6:
                return 0, None
            return 6, None

        for i in range(2, len(buf)):
            if _is_csi_final(buf[i]):
                seq = buf[: i + 1]
                if seq.startswith("\x1b[<"):
                    return i + 1, decode_sgr_mouse(seq[2:])
                return i + 1, _ALIASES.get(seq, seq)
            if not ("\x20" <= buf[i] <= "\x3f"):
                # Malformed: emit the escape on its own and resync
                return 1, KEY_ESCAPE
        return 0, None
