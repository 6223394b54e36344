"""Event loop wiring for the full-screen dashboard.

One asyncio loop owns everything: stdin is read through ``add_reader``,
signals through ``add_signal_handler``, and each workflow is a task. The
screen is redrawn whenever the store changes, coalesced to at most one
draw per loop iteration.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.live import Live

from arbor import __version__
from arbor.config import Config, load_config
from arbor.dashboard.input import InputDecoder
from arbor.dashboard.layout import PaneSplit
from arbor.dashboard.render import is_animating, render_dashboard
from arbor.dashboard.router import DashboardController
from arbor.dashboard.state import Store
from arbor.dashboard.terminal import TerminalSession
from arbor.git import find_main_repo_root
from arbor.log import log

# A lone ESC still unresolved after this long is the Escape key
ESCAPE_TIMEOUT = 0.05
TICK_INTERVAL = 0.1
READ_SIZE = 4096

console = Console()


class DashboardApp:
    """Runs one dashboard session until the user quits."""

    def __init__(self, repo_root: Path | None, config: Config, console: Console = console):
        self.console = console
        self.store = Store()
        self.split = PaneSplit(console.width)
        self.controller = DashboardController(
            self.store, repo_root, config, self.split, screen_height=console.height
        )
        self.decoder = InputDecoder()
        self._live: Live | None = None
        self._draw_scheduled = False
        self._escape_timer: asyncio.TimerHandle | None = None
        self.store.subscribe(lambda _state: self.request_draw())

    # Drawing

    def draw(self) -> None:
        self._draw_scheduled = False
        if self._live is None:
            return
        screen = render_dashboard(
            self.store.state, self.split, self.console.height, __version__
        )
        self._live.update(screen, refresh=True)

    def request_draw(self) -> None:
        if self._draw_scheduled:
            return
        self._draw_scheduled = True
        asyncio.get_running_loop().call_soon(self.draw)

    # Input

    def _on_readable(self, fd: int) -> None:
        try:
            data = os.read(fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            log(f"stdin read failed: {e}")
            self.controller.quit()
            return
        if not data:
            log("stdin closed")
            self.controller.quit()
            return

        if self._escape_timer is not None:
            self._escape_timer.cancel()
            self._escape_timer = None

        self._dispatch_events(self.decoder.feed(data))
        if self.decoder.has_pending:
            loop = asyncio.get_running_loop()
            self._escape_timer = loop.call_later(ESCAPE_TIMEOUT, self._flush_escape)

    def _flush_escape(self) -> None:
        self._escape_timer = None
        self._dispatch_events(self.decoder.flush())

    def _dispatch_events(self, events: list) -> None:
        for event in events:
            log(f"input: {event!r}")
            self.controller.handle_input(event)
        if events:
            # Pane drags change the split without touching the store
            self.request_draw()

    def _on_resize(self) -> None:
        self.controller.resize(self.console.width, self.console.height)
        self.request_draw()

    # Background loops

    async def _auto_refresh(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            state = self.store.state
            if not (state.loading or state.refreshing):
                self.controller.refresh()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(TICK_INTERVAL)
            if is_animating(self.store.state):
                self.request_draw()

    async def run(self, terminal: TerminalSession) -> list[str]:
        """Run until quit; returns the lines to print after the terminal is restored."""
        loop = asyncio.get_running_loop()
        controller = self.controller
        fd = terminal.fd
        handled_signals = [signal.SIGWINCH, signal.SIGTERM, signal.SIGHUP, signal.SIGINT]
        background: list[asyncio.Task] = []

        with terminal, Live(
            console=self.console,
            auto_refresh=False,
            transient=True,
            vertical_overflow="crop",
        ) as live:
            self._live = live
            try:
                loop.add_reader(fd, self._on_readable, fd)
                loop.add_signal_handler(signal.SIGWINCH, self._on_resize)
                for sig in (signal.SIGTERM, signal.SIGHUP, signal.SIGINT):
                    loop.add_signal_handler(sig, controller.quit)

                self.draw()
                controller.spawn(controller.load(initial=True), "load")
                background.append(asyncio.create_task(self._tick()))
                interval = controller.config.dashboard.refresh_interval
                if interval > 0:
                    background.append(asyncio.create_task(self._auto_refresh(interval)))

                await controller.exit_event.wait()
                log("dashboard: quitting")
            finally:
                if self._escape_timer is not None:
                    self._escape_timer.cancel()
                loop.remove_reader(fd)
                for sig in handled_signals:
                    loop.remove_signal_handler(sig)
                for task in background:
                    task.cancel()
                await asyncio.gather(*background, return_exceptions=True)
                await controller.cancel_all()
                self._live = None

        return controller.exit_lines


def run_dashboard(config: Config | None = None, cwd: Path | None = None) -> int:
    """Entry point for `arbor dashboard`. Returns the process exit code."""
    if not sys.stdin.isatty():
        console.print("[yellow]The dashboard requires an interactive terminal[/yellow]")
        return 1

    repo_root = find_main_repo_root(cwd)
    if config is None:
        config = load_config(repo_root)
    log(f"dashboard: starting in {repo_root}")

    app = DashboardApp(repo_root, config)
    lines = asyncio.run(app.run(TerminalSession()))

    for line in lines:
        console.print(line, markup=False, highlight=False, soft_wrap=True)
    return 0
