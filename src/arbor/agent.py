"""Launching the external AI coding agent."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from pathlib import Path

from arbor.config import Config
from arbor.linear import Ticket
from arbor.process import run_command

WORK_MODES = ("plan", "implement", "review", "fix")


def resolve_agent_binary(config: Config) -> str | None:
    """Full path of the configured agent binary, None if not installed."""
    return shutil.which(config.agent.binary)


def resume_command(binary: str, session_id: str) -> str:
    return f"{shlex.quote(binary)} --resume {shlex.quote(session_id)}"


def work_command(config: Config, mode: str) -> str:
    """Shell command that starts agent work in the current worktree."""
    return f"{config.agent.work_command} --mode {mode}"


def render_ticket(ticket: Ticket) -> str:
    lines = [f"# {ticket.identifier}: {ticket.title}", ""]
    lines.append(f"Status: {ticket.state.name}")
    lines.append(f"Priority: {ticket.priority_label}")
    if ticket.labels:
        lines.append(f"Labels: {', '.join(ticket.labels)}")
    lines.append(f"URL: {ticket.url}")
    if ticket.description:
        lines.extend(["", ticket.description.strip()])
    return "\n".join(lines)


def build_work_prompt(ticket_id: str, ticket: Ticket | None, mode: str) -> str:
    """Prompt handed to the agent for a work mode."""
    context = render_ticket(ticket) if ticket else f"Ticket {ticket_id} (details unavailable)"
    if mode == "plan":
        task = "Read the ticket and the relevant code, then propose an implementation plan."
    elif mode == "review":
        task = "Review the open pull request for this branch against the ticket. Use `gh pr diff`."
    elif mode == "fix":
        task = (
            "Address the failing checks and review feedback on this branch's pull request. "
            "Use `gh pr checks` and `gh pr view --comments` to find them."
        )
    else:
        task = "Implement the ticket in this worktree. Commit with the ticket id in the message."
    return f"{task}\n\n{context}\n"


def build_pr_body_prompt(
    ticket_id: str | None, branch: str, commit_log: str, diff_stat: str
) -> str:
    return (
        "Write a concise GitHub pull request description in markdown for the changes below. "
        "Output only the description.\n\n"
        f"Branch: {branch}\n"
        f"Ticket: {ticket_id or 'none'}\n\n"
        f"Commits:\n{commit_log or '(none)'}\n\n"
        f"Diffstat:\n{diff_stat or '(none)'}\n"
    )


async def generate_text(binary: str, prompt: str, cwd: Path) -> str | None:
    """Run the agent non-interactively and return its text output."""
    result = await run_command([binary, "-p", prompt, "--output-format", "text"], cwd=cwd)
    if not result.ok:
        return None
    return result.stdout.strip() or None


def launch_agent(
    binary: str,
    prompt: str,
    plan: bool = False,
    session_id: str | None = None,
    cwd: Path | None = None,
) -> int:
    """Run an interactive agent session attached to this terminal."""
    args = [binary]
    if session_id:
        args.extend(["--session-id", session_id])
    if plan:
        args.extend(["--permission-mode", "plan"])
    args.append(prompt)
    return subprocess.run(args, cwd=cwd).returncode
