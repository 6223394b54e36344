"""Rich renderables for the dashboard screens.

Everything here is a pure function of the state, the pane split and the
terminal size. Each pane is drawn as a fixed number of single-line rows
so that screen rows map one-to-one onto list rows for mouse handling.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from arbor.dashboard.layout import (
    HEADER_HEIGHT,
    LIST_FOOTER_HEIGHT,
    SEPARATOR_WIDTH,
    ListRow,
    PaneSplit,
    RowKind,
    build_list_rows,
)
from arbor.dashboard.state import (
    CommitPhase,
    DashboardIssue,
    DashboardState,
    Overlay,
    PrCreatePhase,
)
from arbor.github import PRCheck, PRInfo, ReviewState

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
SELECTED_BG = "on #1e3a5f"
MAX_FILES = 8

REVIEW_DECISION_STYLES = {
    ReviewState.APPROVED: ("✓ approved", "green"),
    ReviewState.CHANGES_REQUESTED: ("✗ changes requested", "red"),
    ReviewState.PENDING: ("● review required", "yellow"),
}

# Only used for word wrapping, never printed to
_wrap_console = Console()

# Issue row column widths
CURSOR_WIDTH = 2
DOT_WIDTH = 2
PRIORITY_WIDTH = 4
ID_WIDTH = 11
SESSION_WIDTH = 9
PR_WIDTH = 6
CI_WIDTH = 2
FIXED_ROW_WIDTH = (
    CURSOR_WIDTH + DOT_WIDTH + PRIORITY_WIDTH + ID_WIDTH
    + SESSION_WIDTH + 1 + PR_WIDTH + 1 + CI_WIDTH
)


def spinner() -> str:
    return SPINNER_FRAMES[int(time.monotonic() * 10) % len(SPINNER_FRAMES)]


def is_animating(state: DashboardState) -> bool:
    """Whether a spinner is on screen and the display should tick."""
    return (
        state.loading
        or state.refreshing
        or state.creating_for_ticket is not None
        or state.deleting_for_ticket is not None
        or state.commit.phase in (CommitPhase.COMMITTING, CommitPhase.PUSHING)
        or state.pr_create.phase in (PrCreatePhase.PUSHING, PrCreatePhase.CREATING)
    )


def state_color(state_type: str) -> str:
    if state_type == "started":
        return "green"
    if state_type == "unstarted":
        return "blue"
    if state_type == "backlog":
        return "bright_black"
    return "yellow"


PRIORITY_MARKERS = {
    1: ("!!!", "red"),
    2: ("!! ", "yellow"),
    3: ("!  ", "blue"),
    4: ("·  ", "bright_black"),
}


def checks_indicator(checks: tuple[PRCheck, ...] | None) -> tuple[str, str]:
    if not checks:
        return "-", "bright_black"
    if any(c.bucket == "fail" for c in checks):
        return "✗", "red"
    if all(c.bucket == "pass" for c in checks):
        return "✓", "green"
    return "●", "yellow"


def pr_indicator(pr: PRInfo | None) -> tuple[str, str]:
    if pr is None:
        return "-", "bright_black"
    label = f"#{pr.number}"
    if pr.state == "MERGED":
        return label, "magenta"
    if pr.state == "CLOSED":
        return label, "red"
    if pr.is_draft:
        return label, "bright_black"
    return label, "green"


def session_indicator(
    issue: DashboardIssue, creating: bool, deleting: bool
) -> tuple[str, str]:
    if deleting:
        return f"{spinner()} deleting", "red"
    if creating:
        return f"{spinner()} creating", "yellow"
    if issue.worktree is None:
        return "-", "bright_black"
    if issue.worktree.session_id:
        return issue.worktree.session_id[:8], "cyan"
    return "none", "red"


def truncate(text: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(text) > width:
        return text[: width - 1] + "…"
    return text


@dataclass
class GitStatusSummary:
    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    files: list[tuple[str, str]] = field(default_factory=list)


def parse_git_status(raw: str) -> GitStatusSummary:
    """Count staged/unstaged/untracked entries in porcelain status output."""
    summary = GitStatusSummary()
    for line in raw.splitlines():
        if len(line) < 2:
            continue
        x, y = line[0], line[1]
        if x == "?":
            summary.untracked += 1
        else:
            if x != " ":
                summary.staged += 1
            if y != " ":
                summary.unstaged += 1
        summary.files.append((line[:2], line[3:]))
    return summary


def file_color(xy: str) -> str:
    if xy.startswith("??"):
        return "bright_black"
    if xy[0] != " ":
        return "green"
    return "yellow"


def _fit(lines: list[Text], height: int) -> Text:
    """Exactly `height` single-line rows."""
    lines = lines[:height]
    lines.extend(Text("") for _ in range(height - len(lines)))
    text = Text("\n").join(lines)
    text.no_wrap = True
    text.overflow = "crop"
    return text


def _rule(width: int) -> Text:
    return Text("─" * max(0, width), style="dim")


def _key_hint(
    key: str, label: str, key_style: str = "bold cyan", label_style: str = "white"
) -> Text:
    text = Text("  ")
    text.append(key, style=key_style)
    text.append(f" {label}", style=label_style)
    return text


# List pane


def render_list_row(
    row: ListRow,
    state: DashboardState,
    width: int,
) -> Text:
    title_width = max(width - FIXED_ROW_WIDTH, 10)

    if row.kind == RowKind.COLUMNS:
        text = Text(" " * (CURSOR_WIDTH + DOT_WIDTH + PRIORITY_WIDTH + ID_WIDTH + title_width))
        text.append("session".rjust(SESSION_WIDTH))
        text.append(" " + "pr".rjust(PR_WIDTH))
        text.append(" " + "ci".rjust(CI_WIDTH))
        text.stylize("dim")
        return text
    if row.kind == RowKind.PROJECT:
        return Text(f"── {row.label} ({row.count}) ──", style="bold dim")
    if row.kind == RowKind.STATUS:
        return Text(f"  {row.label} ({row.count})", style="dim")

    issue = row.issue
    if issue is None:
        return Text("")
    ticket = issue.ticket
    selected = row.flat_index == state.selected_index
    bg = SELECTED_BG if selected else ""

    marker, marker_color = PRIORITY_MARKERS.get(ticket.priority, ("   ", "bright_black"))
    session, session_color = session_indicator(
        issue,
        creating=ticket.identifier == state.creating_for_ticket,
        deleting=ticket.identifier == state.deleting_for_ticket,
    )
    pr, pr_color = pr_indicator(issue.pr)
    ci, ci_color = checks_indicator(issue.checks)

    text = Text()
    text.append("> " if selected else "  ", style=f"bold cyan {bg}" if selected else "")
    text.append("● ", style=f"{state_color(ticket.state.type)} {bg}")
    text.append(f"{marker} ", style=f"{marker_color} {bg}")
    text.append(
        ticket.identifier.ljust(ID_WIDTH - 1)[: ID_WIDTH - 1] + " ",
        style=f"bold cyan {bg}" if selected else "",
    )
    text.append(
        truncate(ticket.title, title_width).ljust(title_width),
        style=f"bold white {bg}" if selected else "",
    )
    text.append(session.rjust(SESSION_WIDTH), style=f"{session_color} {bg}")
    text.append(" ", style=bg)
    text.append(pr.rjust(PR_WIDTH), style=f"{pr_color} {bg}")
    text.append(" ", style=bg)
    text.append(ci.rjust(CI_WIDTH), style=f"{ci_color} {bg}")
    return text


def render_list_pane(state: DashboardState, width: int, height: int) -> Text:
    rows = build_list_rows(state.groups)
    list_height = max(0, height - LIST_FOOTER_HEIGHT)
    visible = rows[state.list_scroll_offset : state.list_scroll_offset + list_height]
    lines = [render_list_row(row, state, width) for row in visible]
    lines.extend(Text("") for _ in range(list_height - len(lines)))

    footer = Text()
    for key, label in (
        ("j/k", "Navigate"),
        ("Shift+↑↓", "Scroll detail"),
        ("E", "Workspace"),
        ("R", "Refresh"),
        ("q", "Quit"),
    ):
        footer.append_text(_key_hint(key, label))
    lines.extend([_rule(width), footer])
    return _fit(lines, height)


# Detail pane


def detail_actions(issue: DashboardIssue) -> list[tuple[str, str, str]]:
    """(key, label, colour) for each action available on the issue."""
    wt, pr = issue.worktree, issue.pr
    items: list[tuple[str, str, str]] = []
    if wt is not None and wt.session_id:
        items.append(("↵", "Resume", "cyan"))
    elif wt is not None:
        items.append(("w", "Work", "cyan"))
        items.append(("↵", "Switch", "cyan"))
    else:
        items.append(("w", "Work", "cyan"))
    if wt is not None:
        items.append(("e", "Editor", "cyan"))
    if wt is not None and wt.dirty:
        items.append(("C", "Commit", "cyan"))
    if wt is not None and pr is None:
        items.append(("c", "Create PR", "cyan"))
    if pr is not None:
        items.append(("f", "Fix PR", "cyan"))
        items.append(("r", "Review", "cyan"))
    if issue.ticket.url:
        items.append(("o", "Ticket", "bright_black"))
    if pr is not None:
        items.append(("p", "Open PR", "bright_black"))
    if wt is not None:
        items.append(("d", "Remove", "red"))
    return items


def detail_lines(issue: DashboardIssue, width: int) -> list[Text]:
    """Scrollable body of the detail pane."""
    ticket = issue.ticket
    lines: list[Text] = []

    lines.append(Text(f"{ticket.identifier}  {ticket.title}", style="bold"))
    meta = [ticket.state.name, ticket.priority_label]
    if ticket.labels:
        meta.append(", ".join(ticket.labels))
    lines.append(Text(" · ".join(m for m in meta if m), style=state_color(ticket.state.type)))

    if ticket.description:
        lines.append(_rule(width))
        lines.append(Text(""))
        lines.extend(
            Text(ticket.description.rstrip()).wrap(_wrap_console, max(width, 1), overflow="fold")
        )
        lines.append(Text(""))

    lines.append(_rule(width))
    lines.append(Text("WORKTREE", style="dim"))
    wt = issue.worktree
    if wt is not None:
        lines.append(Text(f"  {wt.branch}"))
        lines.append(Text(f"  {wt.path}", style="dim"))
        status = parse_git_status(wt.git_status)
        parts = []
        if status.staged:
            parts.append(f"+{status.staged} staged")
        if status.unstaged:
            parts.append(f"~{status.unstaged} unstaged")
        if status.untracked:
            parts.append(f"?{status.untracked} untracked")
        if wt.commits_ahead:
            parts.append(f"+{wt.commits_ahead} ahead")
        if parts:
            lines.append(Text("  " + "  ".join(parts), style="yellow" if wt.dirty else "green"))
        else:
            lines.append(Text("  ✓ clean", style="green"))
        for xy, name in status.files[:MAX_FILES]:
            lines.append(Text(f"    {xy} {name}", style=file_color(xy)))
        if len(status.files) > MAX_FILES:
            lines.append(Text(f"    +{len(status.files) - MAX_FILES} more", style="dim"))
        if wt.session_id:
            lines.append(Text(f"  session: {wt.session_id}", style="cyan"))
        else:
            lines.append(Text("  session: none", style="red"))
    else:
        lines.append(Text("  –", style="dim"))

    lines.append(_rule(width))
    lines.append(Text("PULL REQUEST", style="dim"))
    pr = issue.pr
    if pr is not None:
        color = {"MERGED": "magenta", "OPEN": "green"}.get(pr.state, "red")
        draft = " draft" if pr.is_draft else ""
        lines.append(Text(f"  #{pr.number} {pr.state}{draft}", style=color))
        if pr.url:
            lines.append(Text(f"  {pr.url}", style="dim"))
        if pr.review_decision is not None:
            label, style = REVIEW_DECISION_STYLES[pr.review_decision]
            lines.append(Text(f"  {label}", style=style))
    else:
        lines.append(Text("  –", style="dim"))

    if issue.checks:
        passing = sum(1 for c in issue.checks if c.bucket == "pass")
        lines.append(_rule(width))
        lines.append(Text(f"CHECKS  {passing}/{len(issue.checks)} passing", style="dim"))
        for check in issue.checks:
            if check.bucket == "pass":
                lines.append(Text(f"  ✓ {check.name}", style="green"))
            elif check.bucket == "fail":
                desc = f": {check.description}" if check.description else ""
                lines.append(Text(f"  ✗ {check.name}{desc}", style="red"))
            else:
                lines.append(Text(f"  ● {check.name} (pending)", style="yellow"))

    if issue.reviews:
        lines.append(_rule(width))
        lines.append(Text("REVIEWS", style="dim"))
        for review in issue.reviews:
            color = {"APPROVED": "green", "CHANGES_REQUESTED": "red"}.get(review.state, "yellow")
            lines.append(Text(f"  {review.author}  {review.state}", style=color))

    return lines


def render_creation_log(state: DashboardState, height: int) -> Text:
    """Live tail of the worktree setup output."""
    log_lines = state.creation_logs.split("\n")
    rows = max(0, height - 1)
    tail = log_lines[max(0, len(log_lines) - rows) :]
    lines = [
        Text(
            f"{spinner()} Setting up worktree for {state.creating_for_ticket}...",
            style="bold yellow",
        )
    ]
    lines.extend(Text(line, style="dim") for line in tail)
    return _fit(lines, height)


def render_detail_pane(state: DashboardState, width: int, height: int) -> Text:
    issue = state.selected_issue
    if issue is not None and issue.identifier == state.creating_for_ticket:
        return render_creation_log(state, height)
    if issue is None:
        return _fit([Text("No issue selected", style="dim")], height)

    body = detail_lines(issue, width)
    footer = Text()
    for key, label, color in detail_actions(issue):
        label_style = color if color == "bright_black" else "white"
        footer.append_text(
            _key_hint(key, label, key_style=f"bold {color}", label_style=label_style)
        )

    scrollable = max(0, height - 2)
    can_scroll = len(body) > scrollable
    content_rows = max(0, scrollable - 2) if can_scroll else scrollable
    # Scroll offset is unbounded in state; clamp to the content here
    offset = min(state.detail_scroll_offset, max(0, len(body) - content_rows))
    lines = body[offset : offset + content_rows]

    if can_scroll:
        at_top = offset == 0
        at_bottom = offset + content_rows >= len(body)
        arrow = "↓ scroll" if at_top else "↑ scroll" if at_bottom else "↑↓ scroll"
        lines.extend([Text(""), Text(arrow, style="dim")])

    lines.extend(Text("") for _ in range(scrollable - len(lines)))
    lines.extend([_rule(width), footer])
    return _fit(lines, height)


# Overlays


def _target_lines(width: int, title: str, branch: str | None, ticket_id: str | None) -> list[Text]:
    lines = [Text(title, style="bold cyan"), _rule(min(width, 50))]
    branch_line = Text("branch: ", style="dim")
    branch_line.append(branch or "", style="default")
    ticket_line = Text("ticket: ", style="dim")
    ticket_line.append(ticket_id or "", style="default")
    lines.extend([branch_line, ticket_line, Text("")])
    return lines


def render_commit_overlay(state: DashboardState, width: int, height: int) -> Text:
    flow = state.commit
    lines = _target_lines(width, "Commit & Push", flow.branch, flow.ticket_id)

    if flow.git_status:
        status_lines = flow.git_status.split("\n")
        lines.append(Text("Changes:", style="dim"))
        for line in status_lines[:MAX_FILES]:
            lines.append(Text(f" {line}", style=file_color(line) if len(line) >= 2 else ""))
        if len(status_lines) > MAX_FILES:
            lines.append(Text(f" +{len(status_lines) - MAX_FILES} more", style="dim"))
        lines.append(Text(""))

    if flow.phase == CommitPhase.CONFIRM_STAGE:
        prompt = Text("Stage all changes? ")
        prompt.append("y", style="bold cyan")
        prompt.append("/")
        prompt.append("n", style="bold cyan")
        lines.append(prompt)
    elif flow.phase == CommitPhase.AWAITING_MESSAGE:
        entry = Text("Message: ")
        entry.append(flow.message)
        entry.append("█", style="cyan")
        lines.append(entry)
    elif flow.phase == CommitPhase.COMMITTING:
        lines.append(Text(f"{spinner()} Committing...", style="cyan"))
    elif flow.phase == CommitPhase.PUSHING:
        lines.append(Text(f"{spinner()} Pushing...", style="cyan"))
    elif flow.phase == CommitPhase.DONE:
        lines.append(Text("Committed and pushed!", style="bold green"))
    elif flow.phase == CommitPhase.ERROR:
        lines.append(Text(flow.error or "Commit failed", style="red"))

    lines.extend([Text(""), Text("ESC to cancel", style="dim")])
    return _fit(lines, height)


def render_pr_create_overlay(state: DashboardState, width: int, height: int) -> Text:
    flow = state.pr_create
    lines = _target_lines(width, "Create Pull Request", flow.branch, flow.ticket_id)

    if flow.phase == PrCreatePhase.CHOOSE_MODE:
        lines.append(Text("How do you want to create this PR?", style="bold"))
        lines.append(Text(""))
        fill = Text(" ")
        fill.append("f", style="bold cyan")
        fill.append(" Fill: write title & body from the commits")
        web = Text(" ")
        web.append("w", style="bold cyan")
        web.append(" Web: open in browser to edit manually")
        lines.extend([fill, web])
    elif flow.phase == PrCreatePhase.PUSHING:
        lines.append(Text(f"{spinner()} Pushing branch...", style="cyan"))
    elif flow.phase == PrCreatePhase.CREATING:
        lines.append(Text(f"{spinner()} Creating PR...", style="cyan"))
    elif flow.phase == PrCreatePhase.DONE:
        lines.append(Text("PR created!", style="bold green"))
        if flow.url:
            lines.append(Text(flow.url, style="dim"))
    elif flow.phase == PrCreatePhase.ERROR:
        lines.append(Text(flow.error or "PR creation failed", style="red"))
        retry = Text(" ")
        retry.append("w", style="bold cyan")
        retry.append(" Open in browser instead")
        lines.append(retry)

    lines.extend([Text(""), Text("ESC to cancel", style="dim")])
    return _fit(lines, height)


def _choice(key: str, label: str, key_style: str) -> Text:
    text = Text()
    text.append(key, style=key_style)
    text.append(f"  {label}")
    return text


def render_modal(state: DashboardState) -> Panel | None:
    """Centred dialog for the full-screen overlays."""
    if state.overlay == Overlay.MODE_SELECT:
        body = Group(
            Text("Select mode:", style="bold"),
            Text(""),
            _choice("p", "Plan", "bold cyan"),
            _choice("i", "Implement", "bold cyan"),
            Text(""),
            Text("ESC to cancel", style="dim"),
        )
        return Panel(body, border_style="cyan", expand=False, padding=(1, 3))

    if state.overlay == Overlay.CONFIRM_DELETE:
        issue = state.overlay_issue
        wt = issue.worktree if issue else None
        parts: list[RenderableType] = [
            Text("Remove worktree?", style="bold red"),
            Text(""),
            Text(wt.branch if wt else ""),
        ]
        if wt is not None and wt.dirty:
            parts.append(Text("Warning: worktree has uncommitted changes", style="yellow"))
        parts.extend(
            [
                Text(""),
                _choice("y", "Confirm", "bold red"),
                _choice("n", "Cancel", "bold cyan"),
            ]
        )
        return Panel(Group(*parts), border_style="red", expand=False, padding=(1, 3))

    if state.overlay == Overlay.CONFIRM_SETUP:
        body = Group(
            Text("Run setup script?", style="bold"),
            Text(""),
            Text(".arbor/init.sh", style="dim"),
            Text(""),
            _choice("y", "Run setup", "bold green"),
            _choice("n", "Skip", "bold yellow"),
        )
        return Panel(body, border_style="yellow", expand=False, padding=(1, 3))

    return None


# Whole screen


def render_header(state: DashboardState, version: str) -> Text:
    header = Text()
    header.append("arbor", style="bold cyan")
    header.append(f" v{version}", style="dim")
    header.append(f" ({len(state.flat_issues)} issues)", style="dim")
    if state.refreshing:
        header.append(f" {spinner()} refreshing...", style="dim")
    if state.action_message:
        header.append(f"  {state.action_message}", style="yellow")
    header.no_wrap = True
    header.overflow = "ellipsis"
    return header


def _centered(renderable: RenderableType, height: int) -> Align:
    return Align.center(renderable, vertical="middle", height=height)


def render_dashboard(
    state: DashboardState,
    split: PaneSplit,
    height: int,
    version: str,
) -> RenderableType:
    """The full screen for the current state."""
    if state.loading:
        return _centered(Text(f"{spinner()} Loading dashboard...", style="cyan"), height)

    if state.error:
        return _centered(
            Group(
                Text(f"Error: {state.error}", style="bold red", justify="center"),
                Text("Press R to retry or q to quit", style="dim", justify="center"),
            ),
            height,
        )

    if not state.flat_issues:
        return _centered(
            Group(
                Text("No active issues assigned to you", style="yellow", justify="center"),
                Text("Press R to refresh or q to quit", style="dim", justify="center"),
            ),
            height,
        )

    content_height = max(1, height - HEADER_HEIGHT)
    header = render_header(state, version)

    if (modal := render_modal(state)) is not None:
        return Group(header, _centered(modal, content_height))

    if state.overlay == Overlay.COMMIT:
        right = render_commit_overlay(state, split.right_width, content_height)
    elif state.overlay == Overlay.PR_CREATE:
        right = render_pr_create_overlay(state, split.right_width, content_height)
    else:
        right = render_detail_pane(state, split.right_width, content_height)

    left = render_list_pane(state, split.left_width, content_height)
    separator = _fit([Text(" │ ", style="dim") for _ in range(content_height)], content_height)

    grid = Table.grid(padding=0)
    grid.add_column(width=split.left_width, no_wrap=True)
    grid.add_column(width=SEPARATOR_WIDTH, no_wrap=True)
    grid.add_column(width=split.right_width, no_wrap=True)
    grid.add_row(left, separator, right)
    return Group(header, grid)
