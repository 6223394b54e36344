"""Shared fixtures."""

import pytest


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep the debug log and global config out of the real home directory."""
    monkeypatch.setenv("ARBOR_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("ARBOR_CONFIG_DIR", str(tmp_path / "config"))
    for var in ("LINEAR_API_KEY", "ARBOR_EDITOR", "ARBOR_AGENT", "TMUX"):
        monkeypatch.delenv(var, raising=False)
