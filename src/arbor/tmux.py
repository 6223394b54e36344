"""tmux integration: one window per ticket inside the current session."""

from __future__ import annotations

import asyncio
import os
import subprocess
from pathlib import Path

# Give a fresh shell time to start reading before keys are typed into it
NEW_WINDOW_SETTLE = 0.1


def in_tmux() -> bool:
    return bool(os.environ.get("TMUX"))


def _tmux(args: list[str]) -> bool:
    try:
        subprocess.run(
            ["tmux", *args],
            capture_output=True,
            check=True,
            stdin=subprocess.DEVNULL,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return True


def rename_window(name: str) -> bool:
    return _tmux(["rename-window", name])


def select_window(name: str) -> bool:
    """Switch to an existing window. False if there is no such window."""
    return _tmux(["select-window", "-t", name])


def new_window(name: str, cwd: Path) -> bool:
    return _tmux(["new-window", "-n", name, "-c", str(cwd)])


def send_keys(target: str, command: str) -> bool:
    """Type command into the target window and press Enter."""
    return _tmux(["send-keys", "-t", target, command, "Enter"])


async def open_window_with_command(name: str, cwd: Path, command: str) -> bool:
    """Create a window in cwd and run command in it."""
    if not new_window(name, cwd):
        return False
    await asyncio.sleep(NEW_WINDOW_SETTLE)
    return send_keys(name, command)
