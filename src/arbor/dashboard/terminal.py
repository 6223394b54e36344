"""Terminal mode handling for the full-screen dashboard.

TerminalSession puts the terminal into the state the dashboard needs
(cbreak input, alternate screen, hidden cursor, mouse reporting) and
puts everything back on exit. Restoring is idempotent, so it is safe to
call from a signal handler, the normal exit path and a finally block.
"""

from __future__ import annotations

import contextlib
import sys
import termios
import tty
from typing import Any, TextIO

from arbor.log import log

ENTER_ALT_SCREEN = "\x1b[?1049h"
LEAVE_ALT_SCREEN = "\x1b[?1049l"
HIDE_CURSOR = "\x1b[?25l"
SHOW_CURSOR = "\x1b[?25h"
# Button-event tracking (press, release, drag, wheel) in SGR extended format
ENABLE_MOUSE = "\x1b[?1002h\x1b[?1006h"
DISABLE_MOUSE = "\x1b[?1006l\x1b[?1002l"


def save_terminal_state(fd: int) -> list[Any] | None:
    """Save current terminal attributes. Returns None if fd is not a tty."""
    try:
        return termios.tcgetattr(fd)
    except termios.error:
        return None


def restore_terminal_state(fd: int, state: list[Any] | None) -> None:
    if state is not None:
        with contextlib.suppress(termios.error):
            termios.tcsetattr(fd, termios.TCSADRAIN, state)


class TerminalSession:
    """Scoped ownership of the terminal.

    Usage::

        with TerminalSession() as term:
            ...

    Leaving the block, or calling restore(), undoes every change made on
    entry in reverse order.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None):
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._saved: list[Any] | None = None
        self.active = False

    @property
    def fd(self) -> int:
        return self._stdin.fileno()

    def _write(self, seq: str) -> None:
        # The terminal may already be gone (SIGHUP); nothing left to restore then
        with contextlib.suppress(OSError, ValueError):
            self._stdout.write(seq)
            self._stdout.flush()

    def enter(self) -> TerminalSession:
        if self.active:
            return self
        self._saved = save_terminal_state(self.fd)
        if self._saved is not None:
            tty.setcbreak(self.fd)
        self._write(ENTER_ALT_SCREEN + HIDE_CURSOR + ENABLE_MOUSE)
        self.active = True
        log("terminal: entered dashboard mode")
        return self

    def restore(self) -> None:
        if not self.active:
            return
        self.active = False
        self._write(DISABLE_MOUSE + SHOW_CURSOR + LEAVE_ALT_SCREEN)
        restore_terminal_state(self.fd, self._saved)
        self._saved = None
        log("terminal: restored")

    def __enter__(self) -> TerminalSession:
        return self.enter()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
