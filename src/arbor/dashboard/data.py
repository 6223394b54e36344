"""Aggregate tickets, worktrees and pull requests into the dashboard view model."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

from arbor.config import Config
from arbor.dashboard.state import (
    DashboardIssue,
    ProjectGroup,
    StatusGroup,
    WorktreeInfo,
)
from arbor.git import (
    Worktree,
    extract_ticket_id,
    get_commits_ahead,
    get_default_branch,
    get_git_status,
    get_session_id,
    list_worktrees,
    read_all_metadata,
)
from arbor.github import get_pr_checks, get_pr_info, get_pr_reviews
from arbor.linear import Ticket, TicketState, fetch_assigned_issues
from arbor.log import log

NO_PROJECT = "No Project"
ORPHAN_PROJECT = "Orphaned Worktrees"
ORPHAN_STATUS = "Orphaned"
ORPHAN_STATE = TicketState(name=ORPHAN_STATUS, type="orphaned")

# Lower sorts first; anything unknown counts as "other"
STATUS_PRIORITY = {
    "started": 0,
    "unstarted": 1,
    "backlog": 2,
    "triage": 3,
}
OTHER_PRIORITY = 4

_LEADING_TICKET_RE = re.compile(r"^[A-Za-z]+-\d+[-_]?")


def orphan_title(branch: str, identifier: str) -> str:
    """Human title for a worktree with no ticket, derived from its branch.

    'fix/PROJ-9-typo' -> 'typo'
    """
    name = branch.split("/", 1)[1] if "/" in branch else branch
    name = _LEADING_TICKET_RE.sub("", name)
    name = re.sub(r"[-_]+", " ", name).strip()
    return name or identifier


def orphan_ticket(identifier: str, branch: str) -> Ticket:
    return Ticket(
        identifier=identifier,
        title=orphan_title(branch, identifier),
        url="",
        state=ORPHAN_STATE,
    )


def _base_branch(metadata: dict[str, Any], ticket_id: str, default_branch: str) -> str:
    entry = metadata.get(ticket_id)
    if isinstance(entry, dict) and entry.get("base_branch"):
        return str(entry["base_branch"])
    return default_branch


async def enrich_issue(
    ticket: Ticket,
    worktree: Worktree | None,
    metadata: dict[str, Any],
    default_branch: str,
) -> DashboardIssue:
    """Join a ticket with live worktree and PR state.

    Checks and reviews are only fetched when a PR exists; otherwise they
    stay None.
    """
    if worktree is None:
        return DashboardIssue(ticket=ticket)

    base = _base_branch(metadata, ticket.identifier, default_branch)
    status, ahead, pr = await asyncio.gather(
        get_git_status(worktree.path),
        get_commits_ahead(worktree.path, base),
        get_pr_info(worktree.branch, cwd=worktree.path),
    )
    info = WorktreeInfo(
        path=worktree.path,
        branch=worktree.branch,
        dirty=bool(status),
        commits_ahead=ahead,
        session_id=get_session_id(metadata, ticket.identifier),
        git_status=status,
    )

    checks = reviews = None
    if pr is not None:
        checks, reviews = await asyncio.gather(
            get_pr_checks(pr.number, cwd=worktree.path),
            get_pr_reviews(pr.number, cwd=worktree.path),
        )

    return DashboardIssue(
        ticket=ticket,
        worktree=info,
        pr=pr,
        checks=tuple(checks) if checks is not None else None,
        reviews=tuple(reviews) if reviews is not None else None,
    )


def group_by_status(issues: list[DashboardIssue]) -> tuple[StatusGroup, ...]:
    """Sub-group by status name, ordered by status type, first-seen on ties."""
    buckets: dict[str, list[DashboardIssue]] = {}
    types: dict[str, str] = {}
    for di in issues:
        name = di.ticket.state.name
        buckets.setdefault(name, []).append(di)
        types.setdefault(name, di.ticket.state.type)

    # sorted() is stable, so equal priorities keep first-seen order
    names = sorted(buckets, key=lambda n: STATUS_PRIORITY.get(types[n], OTHER_PRIORITY))
    return tuple(StatusGroup(name=n, type=types[n], issues=tuple(buckets[n])) for n in names)


def group_issues(
    issues: list[DashboardIssue], orphans: list[DashboardIssue] | None = None
) -> tuple[ProjectGroup, ...]:
    """Group by project (first-seen order), then by status; orphans last."""
    by_project: dict[str, list[DashboardIssue]] = {}
    project_ids: dict[str, str | None] = {}
    for di in issues:
        name = di.ticket.project_name or NO_PROJECT
        by_project.setdefault(name, []).append(di)
        project_ids.setdefault(name, di.ticket.project_id)

    groups = [
        ProjectGroup(name=name, id=project_ids[name], status_groups=group_by_status(members))
        for name, members in by_project.items()
    ]
    if orphans:
        groups.append(
            ProjectGroup(
                name=ORPHAN_PROJECT,
                id=None,
                status_groups=(
                    StatusGroup(name=ORPHAN_STATUS, type="orphaned", issues=tuple(orphans)),
                ),
            )
        )
    return tuple(groups)


def flatten(groups: tuple[ProjectGroup, ...]) -> tuple[DashboardIssue, ...]:
    """Canonical selection order: project, then status group, then issue."""
    return tuple(di for group in groups for di in group.issues)


def ticket_worktrees(worktrees: list[Worktree], repo_root: Path) -> dict[str, Worktree]:
    """Map ticket id -> worktree, skipping the bare repo and the main checkout."""
    by_ticket: dict[str, Worktree] = {}
    root = repo_root.resolve()
    for wt in worktrees:
        if wt.is_bare or not wt.branch:
            continue
        if wt.path.resolve() == root:
            continue
        if ticket_id := extract_ticket_id(wt.branch):
            by_ticket[ticket_id] = wt
    return by_ticket


async def load_dashboard_data(
    repo_root: Path, config: Config
) -> tuple[tuple[ProjectGroup, ...], tuple[DashboardIssue, ...]]:
    """Fetch and join everything the dashboard shows.

    Args:
        repo_root: Main repository root
        config: Loaded configuration (Linear credentials)

    Returns:
        (groups, flat_issues)

    Raises:
        LinearError: if the assigned tickets can't be fetched
    """
    tickets, worktrees = await asyncio.gather(
        fetch_assigned_issues(config.linear.api_key, config.linear.api_url),
        asyncio.to_thread(list_worktrees, repo_root),
    )
    metadata = read_all_metadata(repo_root)
    default_branch = await asyncio.to_thread(get_default_branch, repo_root)
    by_ticket = ticket_worktrees(worktrees, repo_root)

    known = {t.identifier for t in tickets}
    orphan_ids = [tid for tid in by_ticket if tid not in known]

    enriched, orphans = await asyncio.gather(
        asyncio.gather(
            *(
                enrich_issue(t, by_ticket.get(t.identifier), metadata, default_branch)
                for t in tickets
            )
        ),
        asyncio.gather(
            *(
                enrich_issue(
                    orphan_ticket(tid, by_ticket[tid].branch),
                    by_ticket[tid],
                    metadata,
                    default_branch,
                )
                for tid in orphan_ids
            )
        ),
    )

    groups = group_issues(list(enriched), list(orphans))
    flat = flatten(groups)
    log(f"data: {len(tickets)} tickets, {len(by_ticket)} worktrees, {len(orphan_ids)} orphans")
    return groups, flat
