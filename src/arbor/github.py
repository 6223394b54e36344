"""GitHub CLI wrapper for arbor."""

from __future__ import annotations

import json
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from arbor.process import CommandResult, run_command


class GitHubError(Exception):
    """GitHub CLI error."""

    pass


class ReviewState(Enum):
    """PR review decision."""

    PENDING = "pending"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"


REVIEW_DECISIONS = {
    "APPROVED": ReviewState.APPROVED,
    "CHANGES_REQUESTED": ReviewState.CHANGES_REQUESTED,
    "REVIEW_REQUIRED": ReviewState.PENDING,
}


@dataclass(frozen=True)
class PRInfo:
    """Information about a pull request."""

    number: int
    state: str  # OPEN, MERGED, CLOSED
    url: str
    is_draft: bool = False
    title: str = ""
    branch: str = ""
    base_branch: str = ""
    review_decision: ReviewState | None = None


@dataclass(frozen=True)
class PRCheck:
    """A single CI check on a pull request."""

    name: str
    bucket: str  # pass, fail, pending, skipping, cancel
    state: str = ""
    description: str = ""
    link: str = ""
    workflow: str = ""


@dataclass(frozen=True)
class PRReview:
    """A submitted review on a pull request."""

    author: str
    state: str  # APPROVED, CHANGES_REQUESTED, COMMENTED, ...
    body: str = ""
    submitted_at: str = ""


def has_gh_cli() -> bool:
    """Check if GitHub CLI is on PATH."""
    return shutil.which("gh") is not None


def require_gh_cli() -> None:
    if not has_gh_cli():
        raise GitHubError("GitHub CLI (gh) not found. Install it from https://cli.github.com")


async def _run_gh(args: list[str], cwd: Path | None = None) -> CommandResult:
    """Run a gh command."""
    return await run_command(["gh", *args], cwd=cwd)


def _parse_json(output: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        return None


def parse_pr_info(data: dict[str, Any]) -> PRInfo:
    return PRInfo(
        number=int(data["number"]),
        state=str(data.get("state") or "OPEN").upper(),
        url=data.get("url") or "",
        is_draft=bool(data.get("isDraft", False)),
        title=data.get("title") or "",
        branch=data.get("headRefName") or "",
        base_branch=data.get("baseRefName") or "",
        review_decision=REVIEW_DECISIONS.get(data.get("reviewDecision") or ""),
    )


async def get_pr_info(branch: str, cwd: Path | None = None) -> PRInfo | None:
    """Get the PR for a branch.

    Args:
        branch: Branch name
        cwd: Directory inside the repository

    Returns:
        PRInfo or None if no PR exists (or gh is unavailable)
    """
    fields = "number,title,headRefName,baseRefName,state,url,isDraft,reviewDecision"
    result = await _run_gh(["pr", "view", branch, "--json", fields], cwd=cwd)
    if not result.ok:
        return None

    data = _parse_json(result.stdout)
    if not isinstance(data, dict) or "number" not in data:
        return None
    return parse_pr_info(data)


async def get_pr_checks(pr_number: int, cwd: Path | None = None) -> list[PRCheck] | None:
    """Get CI checks for a PR. None if they can't be fetched.

    `gh pr checks` exits non-zero when checks fail or are pending, so the
    output is parsed regardless of the exit code.
    """
    result = await _run_gh(
        [
            "pr",
            "checks",
            str(pr_number),
            "--json",
            "name,state,bucket,link,description,workflow",
        ],
        cwd=cwd,
    )
    data = _parse_json(result.stdout)
    if not isinstance(data, list):
        return None
    return [
        PRCheck(
            name=c.get("name") or "",
            bucket=c.get("bucket") or "pending",
            state=c.get("state") or "",
            description=c.get("description") or "",
            link=c.get("link") or "",
            workflow=c.get("workflow") or "",
        )
        for c in data
        if isinstance(c, dict)
    ]


async def get_pr_reviews(pr_number: int, cwd: Path | None = None) -> list[PRReview] | None:
    """Get submitted reviews for a PR. None if they can't be fetched."""
    result = await _run_gh(["pr", "view", str(pr_number), "--json", "reviews"], cwd=cwd)
    if not result.ok:
        return None
    data = _parse_json(result.stdout)
    if not isinstance(data, dict) or not isinstance(data.get("reviews"), list):
        return None
    return [
        PRReview(
            author=(r.get("author") or {}).get("login") or "unknown",
            state=r.get("state") or "",
            body=r.get("body") or "",
            submitted_at=r.get("submittedAt") or "",
        )
        for r in data["reviews"]
        if isinstance(r, dict)
    ]


async def push_branch(worktree_path: Path, branch: str) -> CommandResult:
    """Push branch to origin and set upstream."""
    return await run_command(["git", "push", "-u", "origin", branch], cwd=worktree_path)


async def create_pr_web(worktree_path: Path, base: str, head: str) -> CommandResult:
    """Open GitHub's PR creation form in the browser."""
    args = ["pr", "create", "--web", "--base", base, "--head", head]
    return await _run_gh(args, cwd=worktree_path)


async def create_pr(
    worktree_path: Path,
    base: str,
    head: str,
    title: str | None = None,
    body: str | None = None,
) -> CommandResult:
    """Create a PR non-interactively. stdout holds the new PR URL on success.

    Without a title and body, gh fills both from the commits.
    """
    args = ["pr", "create", "--base", base, "--head", head]
    if title is None or body is None:
        args.append("--fill")
        return await _run_gh(args, cwd=worktree_path)

    with tempfile.NamedTemporaryFile("w", suffix=".md", delete=False) as f:
        f.write(body)
        body_file = Path(f.name)
    try:
        args.extend(["--title", title, "--body-file", str(body_file)])
        return await _run_gh(args, cwd=worktree_path)
    finally:
        body_file.unlink(missing_ok=True)
