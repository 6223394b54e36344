"""XDG-compliant path management for arbor.

Respects XDG Base Directory Specification:
- XDG_CONFIG_HOME: Config files (default: ~/.config)
- XDG_STATE_HOME: State files such as the dashboard log (default: ~/.local/state)

Also supports ARBOR_CONFIG_DIR and ARBOR_STATE_DIR for full override.

Per-repository files live under ``<repo>/.arbor``.
"""

from __future__ import annotations

import os
from pathlib import Path

REPO_DIR_NAME = ".arbor"


def get_config_dir() -> Path:
    """Get the arbor config directory.

    Priority:
    1. ARBOR_CONFIG_DIR env var (full override)
    2. XDG_CONFIG_HOME/arbor
    3. ~/.config/arbor (default)
    """
    if override := os.environ.get("ARBOR_CONFIG_DIR"):
        return Path(override).expanduser()

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "arbor"

    return Path.home() / ".config" / "arbor"


def get_state_dir() -> Path:
    """Get the arbor state directory.

    Priority:
    1. ARBOR_STATE_DIR env var (full override)
    2. XDG_STATE_HOME/arbor
    3. ~/.local/state/arbor (default)
    """
    if override := os.environ.get("ARBOR_STATE_DIR"):
        return Path(override).expanduser()

    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return Path(xdg_state) / "arbor"

    return Path.home() / ".local" / "state" / "arbor"


def get_global_config_path() -> Path:
    """Get the global config file path."""
    return get_config_dir() / "config.toml"


def get_log_path() -> Path:
    """Get the dashboard debug log path."""
    return get_state_dir() / "dashboard.log"


def get_repo_dir(repo_root: Path) -> Path:
    """Get the per-repository .arbor directory."""
    return repo_root / REPO_DIR_NAME


def get_repo_config_path(repo_root: Path) -> Path:
    return get_repo_dir(repo_root) / "config.toml"


def get_worktrees_dir(repo_root: Path) -> Path:
    """Directory holding one worktree per ticket."""
    return get_repo_dir(repo_root) / "worktrees"


def get_metadata_path(repo_root: Path) -> Path:
    return get_repo_dir(repo_root) / "metadata.json"


def get_init_script_path(repo_root: Path) -> Path:
    return get_repo_dir(repo_root) / "init.sh"


def ensure_state_dir() -> Path:
    """Ensure state directory exists and return it."""
    state_dir = get_state_dir()
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir
