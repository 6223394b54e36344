"""Main CLI entry point for arbor."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from arbor import __version__
from arbor.agent import WORK_MODES, build_work_prompt, launch_agent, resolve_agent_binary
from arbor.config import Config, ConfigError, load_config
from arbor.dashboard.data import ticket_worktrees
from arbor.git import (
    GitError,
    Worktree,
    extract_ticket_id,
    find_repo_root,
    get_current_branch,
    get_git_status,
    list_worktrees,
    record_session_id,
    require_main_repo_root,
)
from arbor.github import GitHubError, PRInfo, get_pr_info, require_gh_cli
from arbor.linear import LinearError, fetch_issue

app = typer.Typer(
    name="arbor",
    help="Ticket-driven git worktree dashboard",
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"arbor {__version__}")
        raise typer.Exit()


# Global config path from the callback
_global_config_path: Path | None = None

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file"),
]


def _get_config(repo_root: Path | None, config_path: Path | None = None) -> Config:
    """Load config, exiting with a message if it is malformed."""
    path = config_path if config_path is not None else _global_config_path
    try:
        return load_config(repo_root, path=path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _require_repo() -> Path:
    try:
        return require_main_repo_root()
    except GitError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file"),
    ] = None,
) -> None:
    """arbor - ticket-driven git worktree dashboard.

    Without a command, opens the dashboard.
    """
    global _global_config_path
    _global_config_path = config
    if ctx.invoked_subcommand is None:
        dashboard(config_path=config)


@app.command()
def dashboard(config_path: ConfigOption = None) -> None:
    """Full-screen dashboard of assigned tickets, worktrees and PRs.

    Keys:
    - j/k or arrows: navigate
    - shift+arrows: scroll details
    - w: start work (plan / implement)
    - enter: switch to the ticket's worktree
    - C: commit and push, c: create PR
    - r: review, f: fix checks and feedback
    - o: open ticket, p: open PR, e: open in editor, E: open workspace
    - d: remove worktree
    - R: refresh
    - q: quit
    """
    from arbor.dashboard.app import run_dashboard

    repo_root = _require_repo()
    config = _get_config(repo_root, config_path)
    code = run_dashboard(config, cwd=repo_root)
    if code:
        raise typer.Exit(code)


async def _list_rows(
    worktrees: dict[str, Worktree], with_prs: bool
) -> list[tuple[str, Worktree, str, PRInfo | None]]:
    async def row(ticket_id: str, wt: Worktree) -> tuple[str, Worktree, str, PRInfo | None]:
        status = await get_git_status(wt.path)
        pr = await get_pr_info(wt.branch, cwd=wt.path) if with_prs else None
        return ticket_id, wt, status, pr

    return list(await asyncio.gather(*(row(tid, wt) for tid, wt in worktrees.items())))


def _pr_display(pr: PRInfo | None) -> str:
    if pr is None:
        return "[dim]no PR[/dim]"
    if pr.state == "MERGED":
        return f"[magenta]merged[/magenta] [cyan]#{pr.number}[/cyan]"
    if pr.state == "CLOSED":
        return f"[dim]closed #{pr.number}[/dim]"
    if pr.is_draft:
        return f"[dim]draft[/dim] [cyan]#{pr.number}[/cyan]"
    return f"[green]open[/green] [cyan]#{pr.number}[/cyan]"


@app.command(name="list")
def list_cmd() -> None:
    """Simple list of ticket worktrees (non-interactive)."""
    repo_root = _require_repo()
    worktrees = ticket_worktrees(list_worktrees(repo_root), repo_root)
    if not worktrees:
        console.print("[dim]No ticket worktrees found[/dim]")
        return

    with_prs = True
    try:
        require_gh_cli()
    except GitHubError as e:
        console.print(f"[yellow]{e}; skipping PR status[/yellow]")
        with_prs = False

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Ticket")
    table.add_column("Branch")
    table.add_column("Changes", width=8)
    table.add_column("PR", width=20)

    for ticket_id, wt, status, pr in asyncio.run(_list_rows(worktrees, with_prs)):
        changes = "[yellow]●[/yellow]" if status else "[dim]clean[/dim]"
        table.add_row(ticket_id, wt.branch, changes, _pr_display(pr))

    console.print(table)


@app.command()
def work(
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help=f"One of: {', '.join(WORK_MODES)}"),
    ] = "implement",
    config_path: ConfigOption = None,
) -> None:
    """Start the agent in the current worktree with its ticket as context."""
    if mode not in WORK_MODES:
        console.print(f"[red]Unknown mode: {mode}[/red]")
        raise typer.Exit(1)

    repo_root = _require_repo()
    config = _get_config(repo_root, config_path)

    branch = get_current_branch()
    ticket_id = extract_ticket_id(branch) if branch else None
    if not ticket_id:
        console.print(f"[red]No ticket ID in current branch: {branch or '(detached)'}[/red]")
        raise typer.Exit(1)

    binary = resolve_agent_binary(config)
    if binary is None:
        console.print(f"[red]Agent not found on PATH: {config.agent.binary}[/red]")
        raise typer.Exit(1)

    ticket = None
    if config.linear.enabled:
        try:
            ticket = asyncio.run(
                fetch_issue(ticket_id, config.linear.api_key, config.linear.api_url)
            )
        except LinearError as e:
            console.print(f"[yellow]Could not fetch {ticket_id}: {e}[/yellow]")

    session_id = str(uuid.uuid4())
    record_session_id(repo_root, ticket_id, session_id)
    console.print(f"[blue]{ticket_id}: starting {mode} session {session_id[:8]}[/blue]")

    code = launch_agent(
        binary,
        build_work_prompt(ticket_id, ticket, mode),
        plan=mode == "plan",
        session_id=session_id,
        cwd=find_repo_root(),
    )
    if code:
        raise typer.Exit(code)


if __name__ == "__main__":
    app()
