"""Git worktree operations for arbor."""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from arbor.paths import (
    get_init_script_path,
    get_metadata_path,
    get_worktrees_dir,
)
from arbor.process import CommandResult, run_command

TICKET_ID_RE = re.compile(r"([A-Za-z]+)-(\d+)")


class GitError(Exception):
    """Git command error."""

    pass


@dataclass
class Worktree:
    """A git worktree as reported by `git worktree list`."""

    path: Path
    branch: str
    commit: str = ""
    is_bare: bool = False


@dataclass
class WorktreeResult:
    """Result of creating or removing a worktree."""

    success: bool
    path: Path | None = None
    error: str | None = None


def _git(args: list[str], cwd: Path | None = None) -> str | None:
    """Run a git command synchronously and return trimmed stdout, or None on failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            stdin=subprocess.DEVNULL,
        )
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return None
    return result.stdout.strip()


def extract_ticket_id(branch: str) -> str | None:
    """Extract a ticket identifier from a branch name.

    Matches the first LETTERS-DIGITS run and upper-cases the letters,
    e.g. 'feature/team-123-desc' -> 'TEAM-123'.
    """
    match = TICKET_ID_RE.search(branch)
    if match:
        return f"{match.group(1).upper()}-{match.group(2)}"
    return None


def find_main_repo_root(cwd: Path | None = None) -> Path | None:
    """Find the main (non-worktree) checkout by resolving --git-common-dir."""
    common_dir = _git(["rev-parse", "--git-common-dir"], cwd=cwd)
    if not common_dir:
        return None
    common = Path(common_dir)
    if not common.is_absolute():
        common = (cwd or Path.cwd()) / common
    return common.resolve().parent


def find_repo_root(cwd: Path | None = None) -> Path | None:
    """Toplevel of the checkout containing cwd (a worktree or the main repo)."""
    toplevel = _git(["rev-parse", "--show-toplevel"], cwd=cwd)
    return Path(toplevel) if toplevel else None


def get_current_branch(cwd: Path | None = None) -> str | None:
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if not branch or branch == "HEAD":
        return None
    return branch


def get_default_branch(repo_root: Path | None = None) -> str:
    """Determine the default branch of origin, falling back to main/master."""
    ref = _git(["symbolic-ref", "refs/remotes/origin/HEAD"], cwd=repo_root)
    if ref:
        return ref.removeprefix("refs/remotes/origin/")

    for branch in ("main", "master"):
        if _git(["rev-parse", "--verify", f"refs/heads/{branch}"], cwd=repo_root) is not None:
            return branch
    return "main"


def parse_worktree_list(output: str) -> list[Worktree]:
    """Parse `git worktree list --porcelain` output."""
    worktrees: list[Worktree] = []
    current: dict[str, Any] = {}

    for line in output.splitlines():
        if line.startswith("worktree "):
            current["path"] = Path(line.removeprefix("worktree "))
        elif line.startswith("HEAD "):
            current["commit"] = line.removeprefix("HEAD ")[:8]
        elif line.startswith("branch "):
            current["branch"] = line.removeprefix("branch ").removeprefix("refs/heads/")
        elif line == "bare":
            current["is_bare"] = True
        elif line == "" and "path" in current:
            worktrees.append(Worktree(branch=current.pop("branch", ""), **current))
            current = {}

    if "path" in current:
        worktrees.append(Worktree(branch=current.pop("branch", ""), **current))

    return worktrees


def list_worktrees(repo_root: Path | None = None) -> list[Worktree]:
    """List all worktrees of the repository. Returns [] on failure."""
    output = _git(["worktree", "list", "--porcelain"], cwd=repo_root)
    if not output:
        return []
    return parse_worktree_list(output)


def get_worktree_path(branch: str, repo_root: Path | None = None) -> Path | None:
    """Path of the worktree checked out on branch, if any."""
    for wt in list_worktrees(repo_root):
        if wt.branch == branch:
            return wt.path
    return None


# Metadata: .arbor/metadata.json keyed by ticket id


def read_all_metadata(repo_root: Path) -> dict[str, Any]:
    """Read .arbor/metadata.json. Returns {} if missing or unreadable."""
    path = get_metadata_path(repo_root)
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def write_all_metadata(repo_root: Path, data: dict[str, Any]) -> None:
    path = get_metadata_path(repo_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n")


def get_base_branch(branch: str, repo_root: Path) -> str:
    """Base branch recorded for the branch's ticket, else the default branch."""
    ticket_id = extract_ticket_id(branch)
    if ticket_id:
        entry = read_all_metadata(repo_root).get(ticket_id)
        if isinstance(entry, dict) and entry.get("base_branch"):
            return str(entry["base_branch"])
    return get_default_branch(repo_root)


def get_session_id(metadata: dict[str, Any], ticket_id: str) -> str | None:
    entry = metadata.get(ticket_id)
    if isinstance(entry, dict) and entry.get("session_id"):
        return str(entry["session_id"])
    return None


def record_session_id(repo_root: Path, ticket_id: str, session_id: str) -> None:
    """Remember the agent session started for a ticket so it can be resumed."""
    metadata = read_all_metadata(repo_root)
    entry = metadata.get(ticket_id) if isinstance(metadata.get(ticket_id), dict) else {}
    metadata[ticket_id] = {**entry, "session_id": session_id}
    write_all_metadata(repo_root, metadata)


def has_init_script(repo_root: Path) -> bool:
    return get_init_script_path(repo_root).exists()


def slugify(title: str, max_len: int = 40) -> str:
    """Lower-case slug for branch names."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:max_len]


def branch_name_for_ticket(ticket_id: str, title: str) -> str:
    slug = slugify(title)
    return f"feature/{ticket_id}-{slug}" if slug else f"feature/{ticket_id}"


# Async queries used by the dashboard


async def get_git_status(worktree_path: Path) -> str:
    """`git status --porcelain` output, or '' if the path is gone or git fails."""
    if not worktree_path.is_dir():
        return ""
    result = await run_command(["git", "status", "--porcelain"], cwd=worktree_path)
    return result.stdout.rstrip() if result.ok else ""


async def get_commits_ahead(worktree_path: Path, base: str) -> int:
    """Count commits on HEAD that are not on base. 0 on any failure."""
    if not worktree_path.is_dir():
        return 0
    result = await run_command(["git", "rev-list", "--count", f"{base}..HEAD"], cwd=worktree_path)
    if not result.ok:
        return 0
    try:
        return int(result.stdout.strip())
    except ValueError:
        return 0


async def _branch_exists(branch: str, repo_root: Path) -> bool:
    result = await run_command(
        ["git", "rev-parse", "--verify", f"refs/heads/{branch}"], cwd=repo_root
    )
    return result.ok


async def pull_latest(
    base: str,
    repo_root: Path,
    on_step: Callable[[str], None] | None = None,
) -> CommandResult:
    """Fetch origin and fast-forward the base branch in the main checkout.

    Returns the result of the first failing step, or of the last step.
    """
    steps = [
        ("Fetching origin...", ["git", "fetch", "origin"]),
        (f"Checking out {base}...", ["git", "checkout", base]),
        (f"Pulling {base}...", ["git", "pull", "origin", base]),
    ]
    result = CommandResult(returncode=0, stdout="", stderr="")
    for message, args in steps:
        if on_step:
            on_step(message)
        result = await run_command(args, cwd=repo_root)
        if not result.ok:
            return result
    return result


async def create_worktree(branch: str, base: str, repo_root: Path) -> WorktreeResult:
    """Create a worktree for branch under .arbor/worktrees/<TICKET-ID>.

    The branch is created from base unless it already exists.
    """
    ticket_id = extract_ticket_id(branch)
    if not ticket_id:
        return WorktreeResult(
            success=False,
            error="No ticket ID found in branch name (expected pattern like TEAM-123)",
        )

    worktrees_dir = get_worktrees_dir(repo_root)
    worktree_path = worktrees_dir / ticket_id
    if worktree_path.exists():
        return WorktreeResult(success=False, error=f"Worktree already exists at {worktree_path}")

    try:
        worktrees_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return WorktreeResult(success=False, error=f"Cannot create {worktrees_dir}: {e}")

    if await _branch_exists(branch, repo_root):
        args = ["git", "worktree", "add", str(worktree_path), branch]
    else:
        args = ["git", "worktree", "add", "-b", branch, str(worktree_path), base]

    result = await run_command(args, cwd=repo_root)
    if not result.ok:
        return WorktreeResult(success=False, error=result.error)

    if base != get_default_branch(repo_root):
        metadata = read_all_metadata(repo_root)
        entry = metadata.get(ticket_id) if isinstance(metadata.get(ticket_id), dict) else {}
        metadata[ticket_id] = {**entry, "base_branch": base}
        try:
            write_all_metadata(repo_root, metadata)
        except OSError as e:
            return WorktreeResult(
                success=False, path=worktree_path, error=f"Cannot record base branch: {e}"
            )

    return WorktreeResult(success=True, path=worktree_path)


async def remove_worktree(branch: str, repo_root: Path, force: bool = False) -> WorktreeResult:
    """Remove the worktree on branch, its leftover files, metadata and the branch itself."""
    worktree_path = get_worktree_path(branch, repo_root)
    if worktree_path is None:
        return WorktreeResult(success=False, error=f"Worktree not found: {branch}")

    args = ["git", "worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(worktree_path))

    result = await run_command(args, cwd=repo_root)
    if not result.ok:
        return WorktreeResult(success=False, error=result.error)

    # git leaves untracked/ignored files behind
    if worktree_path.exists():
        shutil.rmtree(worktree_path, ignore_errors=True)

    ticket_id = extract_ticket_id(branch)
    if ticket_id:
        metadata = read_all_metadata(repo_root)
        if ticket_id in metadata:
            del metadata[ticket_id]
            write_all_metadata(repo_root, metadata)

    # Branch deletion is best-effort, the worktree is already gone
    await run_command(["git", "branch", "-D" if force else "-d", branch], cwd=repo_root)

    return WorktreeResult(success=True, path=worktree_path)


async def stage_all(worktree_path: Path) -> CommandResult:
    return await run_command(["git", "add", "-A"], cwd=worktree_path)


async def commit(worktree_path: Path, message: str) -> CommandResult:
    return await run_command(["git", "commit", "-m", message], cwd=worktree_path)


async def get_commit_log(worktree_path: Path, base: str) -> str:
    result = await run_command(["git", "log", f"{base}..HEAD", "--format=- %s"], cwd=worktree_path)
    return result.stdout.strip() if result.ok else ""


async def get_first_commit_subject(worktree_path: Path, base: str) -> str | None:
    result = await run_command(
        ["git", "log", f"{base}..HEAD", "--reverse", "--format=%s"], cwd=worktree_path
    )
    if not result.ok:
        return None
    lines = result.stdout.strip().splitlines()
    return lines[0] if lines else None


async def get_diff_stat(worktree_path: Path, base: str) -> str:
    result = await run_command(["git", "diff", f"{base}..HEAD", "--stat"], cwd=worktree_path)
    return result.stdout.strip() if result.ok else ""


def require_main_repo_root(cwd: Path | None = None) -> Path:
    """Like find_main_repo_root, but raises GitError outside a repository."""
    root = find_main_repo_root(cwd)
    if root is None:
        raise GitError("Not inside a git repository")
    return root
