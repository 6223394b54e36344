"""Subprocess helpers shared by the git, gh and agent wrappers."""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import anyio
from anyio.streams.text import TextReceiveStream


@dataclass
class CommandResult:
    """Outcome of a finished subprocess."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error(self) -> str:
        """Best human-readable failure text."""
        return self.stderr.strip() or self.stdout.strip() or f"exited with code {self.returncode}"


def _env(extra: Mapping[str, str] | None) -> dict[str, str] | None:
    if not extra:
        return None
    env = os.environ.copy()
    env.update(extra)
    return env


async def run_command(
    args: Sequence[str],
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion without touching the terminal.

    Never raises for a failing or missing executable; the failure is
    reported through the returned CommandResult.
    """
    try:
        process = await anyio.run_process(
            list(args),
            cwd=cwd,
            env=_env(env),
            stdin=subprocess.DEVNULL,
            check=False,
        )
    except OSError as e:
        return CommandResult(returncode=127, stdout="", stderr=str(e))

    return CommandResult(
        returncode=process.returncode,
        stdout=process.stdout.decode("utf-8", errors="replace"),
        stderr=process.stderr.decode("utf-8", errors="replace"),
    )


async def stream_command(
    args: Sequence[str],
    on_output: Callable[[str], None],
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run a command, handing combined stdout/stderr to on_output as it arrives.

    Returns the exit code (1 if the command could not be started).
    """
    try:
        process = await anyio.open_process(
            list(args),
            cwd=cwd,
            env=_env(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        on_output(f"{e}\n")
        return 1

    async with process:
        if process.stdout is not None:
            # Decodes incrementally so characters split across reads survive
            async for text in TextReceiveStream(process.stdout, errors="replace"):
                on_output(text)
        returncode = await process.wait()
    return returncode


def spawn_detached(args: Sequence[str], cwd: Path | str | None = None) -> bool:
    """Start a process that outlives the dashboard. Returns False if it can't start."""
    try:
        subprocess.Popen(
            list(args),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError:
        return False
    return True


def open_url(url: str) -> bool:
    """Open a URL in the default browser."""
    opener = "open" if sys.platform == "darwin" else "xdg-open"
    return spawn_detached([opener, url])
