"""Append-only debug log for the dashboard.

The terminal belongs to the UI while the dashboard runs, so diagnostics go
to a file in the state directory instead of stdout/stderr.
"""

from __future__ import annotations

import time

from arbor.paths import ensure_state_dir, get_log_path


def log(msg: str) -> None:
    """Append a timestamped message to the dashboard log."""
    try:
        ensure_state_dir()
        with open(get_log_path(), "a") as f:
            f.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')} {msg}\n")
    except OSError:
        pass
