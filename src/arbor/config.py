"""Configuration loading for arbor.

Config is read from the global ``config.toml`` and then from the
repository's ``.arbor/config.toml``; keys in the repository file win.
Environment variables override both.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from arbor.paths import get_global_config_path, get_repo_config_path

DEFAULT_LINEAR_API_URL = "https://api.linear.app/graphql"


class ConfigError(Exception):
    """Invalid configuration file."""

    pass


@dataclass
class LinearConfig:
    api_key: str | None = None
    api_url: str = DEFAULT_LINEAR_API_URL

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class AgentConfig:
    binary: str = "claude"
    # Command typed into a tmux window to start work on a worktree
    work_command: str = "arbor work"


@dataclass
class EditorConfig:
    command: str = "code"


@dataclass
class DashboardConfig:
    refresh_interval: float = 30.0
    detail_scroll_step: int = 3
    wheel_step: int = 3


@dataclass
class Config:
    """Top-level arbor configuration."""

    linear: LinearConfig = field(default_factory=LinearConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Failed to read config {path}: {e}") from e


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str, cls: type) -> Any:
    raw = data.get(name, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    known = {k: v for k, v in raw.items() if k in cls.__dataclass_fields__}
    try:
        return cls(**known)
    except TypeError as e:
        raise ConfigError(f"Invalid [{name}] section: {e}") from e


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from already-parsed TOML data."""
    return Config(
        linear=_section(data, "linear", LinearConfig),
        agent=_section(data, "agent", AgentConfig),
        editor=_section(data, "editor", EditorConfig),
        dashboard=_section(data, "dashboard", DashboardConfig),
    )


def load_config(repo_root: Path | None = None, path: Path | None = None) -> Config:
    """Load config from the global file, the repo file and the environment.

    Args:
        repo_root: Main repository root; its .arbor/config.toml is layered on top
        path: Explicit config file used instead of the global one
    """
    data = _read_toml(path or get_global_config_path())
    if repo_root is not None:
        data = _merge(data, _read_toml(get_repo_config_path(repo_root)))

    config = parse_config(data)

    if api_key := os.environ.get("LINEAR_API_KEY"):
        config.linear.api_key = api_key
    if editor := os.environ.get("ARBOR_EDITOR"):
        config.editor.command = editor
    if agent := os.environ.get("ARBOR_AGENT"):
        config.agent.binary = agent

    return config
