"""arbor - ticket-driven git worktree dashboard."""

__version__ = "0.4.0"
