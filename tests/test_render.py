"""Smoke tests for the dashboard screens and their pure helpers."""

import io
from pathlib import Path

from factories import make_issue, make_worktree
from rich.console import Console

from arbor.dashboard.data import flatten, group_issues
from arbor.dashboard.layout import PaneSplit
from arbor.dashboard.render import (
    checks_indicator,
    detail_actions,
    detail_lines,
    is_animating,
    parse_git_status,
    render_dashboard,
    truncate,
)
from arbor.dashboard.state import (
    CommitMessage,
    CommitPhase,
    CommitStart,
    DashboardState,
    Overlay,
    SetCommitPhase,
    SetData,
    SetError,
    SetOverlay,
    reduce,
)
from arbor.github import PRCheck, PRInfo, ReviewState

WIDTH = 120
HEIGHT = 30


def screen(state: DashboardState) -> str:
    console = Console(file=io.StringIO(), width=WIDTH, height=HEIGHT, color_system=None)
    console.print(render_dashboard(state, PaneSplit(WIDTH), HEIGHT, "0.4.0"))
    return console.file.getvalue()


def loaded(*issues) -> DashboardState:
    groups = group_issues(list(issues))
    return reduce(DashboardState(), SetData(groups, flatten(groups)))


def test_loading_screen():
    assert "Loading dashboard" in screen(DashboardState())


def test_error_screen():
    output = screen(reduce(DashboardState(), SetError("Linear is down")))
    assert "Error: Linear is down" in output
    assert "Press R to retry or q to quit" in output


def test_empty_screen():
    assert "No active issues assigned to you" in screen(loaded())


def test_list_and_detail():
    wt = make_worktree(Path("/repo/.arbor/worktrees/TEAM-1"), "feature/TEAM-1-login", dirty=True)
    output = screen(loaded(make_issue("TEAM-1", title="Add login", worktree=wt)))
    assert "arbor v0.4.0" in output
    assert "No Project (1)" in output
    assert "In Progress (1)" in output
    assert "TEAM-1  Add login" in output
    assert "WORKTREE" in output
    assert "feature/TEAM-1-login" in output


def test_mode_select_modal():
    state = reduce(loaded(make_issue("TEAM-1")), SetOverlay(Overlay.MODE_SELECT))
    output = screen(state)
    assert "Select mode:" in output
    assert "Implement" in output


def test_commit_overlay_shows_message():
    wt = make_worktree(Path("/wt"), "feature/TEAM-1", dirty=True)
    state = loaded(make_issue("TEAM-1", worktree=wt))
    state = reduce(state, CommitStart("TEAM-1", wt.path, wt.branch, wt.git_status))
    state = reduce(state, SetCommitPhase(CommitPhase.AWAITING_MESSAGE))
    state = reduce(state, CommitMessage("[TEAM-1] fix"))
    output = screen(state)
    assert "Commit & Push" in output
    assert "Message: [TEAM-1] fix" in output


def test_parse_git_status():
    status = parse_git_status(" M app.py\n?? notes.txt\nA  new.py\nMM both.py")
    assert (status.staged, status.unstaged, status.untracked) == (2, 2, 1)
    assert status.files[0] == (" M", "app.py")


def test_checks_indicator():
    assert checks_indicator(None)[0] == "-"
    assert checks_indicator(())[0] == "-"
    assert checks_indicator((PRCheck("a", "pass"), PRCheck("b", "fail")))[0] == "✗"
    assert checks_indicator((PRCheck("a", "pass"),))[0] == "✓"
    assert checks_indicator((PRCheck("a", "pass"), PRCheck("b", "pending")))[0] == "●"


def test_truncate():
    assert truncate("abcdef", 4) == "abc…"
    assert truncate("abc", 4) == "abc"
    assert truncate("abc", 0) == ""


def test_detail_actions_follow_issue_state():
    keys = [key for key, _, _ in detail_actions(make_issue("TEAM-1"))]
    assert keys == ["w", "o"]

    wt = make_worktree(Path("/wt"), "b", dirty=True)
    keys = [key for key, _, _ in detail_actions(make_issue("TEAM-1", worktree=wt))]
    assert keys == ["w", "↵", "e", "C", "c", "o", "d"]


def test_is_animating():
    assert is_animating(DashboardState())
    assert not is_animating(loaded())


def test_long_description_wraps_to_pane_width():
    issue = make_issue("TEAM-1", description="word " * 40 + "\n\nlast paragraph")
    lines = [line.plain for line in detail_lines(issue, 30)]
    description = [line for line in lines if "word" in line]

    assert len(description) > 1
    assert all(len(line) <= 30 for line in description)
    assert sum(line.count("word") for line in description) == 40
    assert "last paragraph" in lines


def test_review_decision_shown_with_pr():
    pr = PRInfo(
        number=7,
        state="OPEN",
        url="https://github.com/acme/app/pull/7",
        review_decision=ReviewState.CHANGES_REQUESTED,
    )
    lines = [line.plain for line in detail_lines(make_issue("TEAM-1", pr=pr), 60)]
    assert "  ✗ changes requested" in lines
