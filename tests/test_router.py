"""Tests for input routing and dashboard workflows."""

import asyncio

import pytest
from factories import make_issue, make_pr, make_worktree

from arbor import tmux
from arbor.config import Config
from arbor.dashboard import router
from arbor.dashboard.data import flatten, group_issues
from arbor.dashboard.input import (
    KEY_CTRL_U,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    MouseEvent,
    MouseKind,
)
from arbor.dashboard.layout import PaneSplit
from arbor.dashboard.router import DashboardController, commit_message, edit_text
from arbor.dashboard.state import (
    CommitDone,
    CommitPhase,
    CreationLog,
    CreationStart,
    Overlay,
    PrCreateDone,
    PrCreatePhase,
    SetActionMessage,
    SetCommitPhase,
    SetData,
    SetError,
    Store,
)
from arbor.git import WorktreeResult
from arbor.process import CommandResult

OK = CommandResult(returncode=0, stdout="", stderr="")


def _fail(message: str) -> CommandResult:
    return CommandResult(returncode=1, stdout="", stderr=message)


class World:
    """Fake collaborators for the controller, recording every call."""

    def __init__(self, monkeypatch):
        self.issues = []
        self.loads = 0
        self.calls = []
        self.results = {}
        self.in_tmux = False
        self.windows = set()

        def record(name, default):
            async def fake(*args, **kwargs):
                self.calls.append((name, args, kwargs))
                return self.results.get(name, default)

            return fake

        async def load_dashboard_data(repo_root, config):
            self.loads += 1
            groups = group_issues(list(self.issues))
            return groups, flatten(groups)

        async def pull_latest(base, repo_root, on_step=None):
            self.calls.append(("pull_latest", (base,), {}))
            if on_step:
                on_step("Fetching origin...")
            return self.results.get("pull_latest", OK)

        async def open_window_with_command(name, cwd, command):
            self.calls.append(("open_window", (name, cwd, command), {}))
            return True

        monkeypatch.setattr(router, "load_dashboard_data", load_dashboard_data)
        monkeypatch.setattr(router, "pull_latest", pull_latest)
        monkeypatch.setattr(router, "stage_all", record("stage_all", OK))
        monkeypatch.setattr(router, "commit", record("commit", OK))
        monkeypatch.setattr(router, "push_branch", record("push_branch", OK))
        monkeypatch.setattr(router, "create_pr", record("create_pr", OK))
        monkeypatch.setattr(router, "create_pr_web", record("create_pr_web", OK))
        monkeypatch.setattr(
            router, "remove_worktree", record("remove_worktree", WorktreeResult(success=True))
        )
        monkeypatch.setattr(
            router, "create_worktree", record("create_worktree", WorktreeResult(success=False))
        )
        monkeypatch.setattr(router, "get_default_branch", lambda root: "main")
        monkeypatch.setattr(router, "get_base_branch", lambda branch, root: "main")
        monkeypatch.setattr(router, "resolve_agent_binary", lambda config: None)

        def open_url(url):
            self.calls.append(("open", (url,), {}))
            return True

        monkeypatch.setattr(router, "open_url", open_url)
        monkeypatch.setattr(tmux, "in_tmux", lambda: self.in_tmux)
        monkeypatch.setattr(tmux, "select_window", lambda name: name in self.windows)
        monkeypatch.setattr(tmux, "send_keys", lambda target, command: True)
        monkeypatch.setattr(tmux, "open_window_with_command", open_window_with_command)

    def called(self, name):
        return [(args, kwargs) for n, args, kwargs in self.calls if n == name]


@pytest.fixture
def world(monkeypatch):
    return World(monkeypatch)


@pytest.fixture
def controller(tmp_path, world):
    ctl = DashboardController(Store(), tmp_path, Config(), PaneSplit(100), screen_height=24)
    ctl.commit_close_delay = 0
    ctl.pr_close_delay = 0
    ctl.session_refresh_delay = 0
    return ctl


def show(controller, *issues):
    groups = group_issues(list(issues))
    controller.dispatch(SetData(groups, flatten(groups)))


def press(controller, *keys):
    for key in keys:
        controller.handle_key(key)


# Keys


@pytest.mark.asyncio
async def test_q_quits(controller):
    press(controller, "q")
    assert controller.exit_event.is_set()
    assert controller.exit_lines == []


@pytest.mark.asyncio
async def test_overlay_takes_keys_before_quit(controller):
    show(controller, make_issue("TEAM-1"))
    press(controller, "w")
    assert controller.state.overlay == Overlay.MODE_SELECT

    press(controller, "q")
    assert controller.state.overlay is None
    assert not controller.exit_event.is_set()


@pytest.mark.asyncio
async def test_navigation_is_clamped(controller):
    show(controller, make_issue("TEAM-1"), make_issue("TEAM-2"), make_issue("TEAM-3"))
    press(controller, "j", KEY_DOWN, "j", "j")
    assert controller.state.selected_index == 2
    press(controller, "k", "k", "k")
    assert controller.state.selected_index == 0


@pytest.mark.asyncio
async def test_error_screen_only_retries_or_quits(controller, world):
    world.issues = [make_issue("TEAM-1")]
    controller.dispatch(SetError("Linear is down"))

    press(controller, "j", "w")
    assert controller.state.overlay is None
    assert controller.state.error == "Linear is down"

    press(controller, "R")
    await controller.wait_idle()
    assert controller.state.error is None
    assert [di.identifier for di in controller.state.flat_issues] == ["TEAM-1"]


@pytest.mark.asyncio
async def test_action_message_cleared_by_next_key(controller):
    show(controller, make_issue("TEAM-1"))
    controller.dispatch(SetActionMessage("Opened in browser"))
    press(controller, "j")
    assert controller.state.action_message is None


@pytest.mark.asyncio
async def test_open_ticket(controller, world):
    show(controller, make_issue("TEAM-1"))
    press(controller, "o")
    assert world.called("open") == [(("https://linear.app/team/issue/TEAM-1",), {})]
    assert controller.state.action_message == "Opened in browser"


@pytest.mark.asyncio
async def test_review_needs_pr(controller, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, "r")
    assert controller.state.action_message == "No PR to review"


@pytest.mark.asyncio
async def test_review_outside_tmux_hands_off_to_shell(controller, tmp_path):
    wt = make_worktree(tmp_path, "feature/TEAM-1")
    show(controller, make_issue("TEAM-1", worktree=wt, pr=make_pr()))
    press(controller, "r")
    assert controller.exit_lines == [f"ARBOR_CD:{tmp_path}", "ARBOR_WORK:review"]


# Switching and launching


@pytest.mark.asyncio
async def test_enter_outside_tmux_prints_cd(controller, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, KEY_ENTER)
    assert controller.exit_event.is_set()
    assert controller.exit_lines == [f"ARBOR_CD:{tmp_path}"]


@pytest.mark.asyncio
async def test_enter_in_tmux_selects_existing_window(controller, world, tmp_path):
    world.in_tmux = True
    world.windows = {"TEAM-1"}
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, KEY_ENTER)
    await controller.wait_idle()
    assert not controller.exit_event.is_set()
    assert world.called("open_window") == []


@pytest.mark.asyncio
async def test_work_with_session_hints_resume(controller, tmp_path):
    wt = make_worktree(tmp_path, "feature/TEAM-1", session_id="0123456789")
    show(controller, make_issue("TEAM-1", worktree=wt))
    press(controller, "w")
    assert controller.state.overlay is None
    assert controller.state.action_message == "Session active. Press Enter to resume."


@pytest.mark.asyncio
async def test_work_on_existing_worktree_in_tmux(controller, world, tmp_path):
    world.in_tmux = True
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, "w", "i")
    await controller.wait_idle()

    (args, _), = world.called("open_window")
    assert args == ("TEAM-1", tmp_path, "arbor work --mode implement")
    assert controller.state.action_message == "Launched implement in tmux window: TEAM-1"
    # the delayed refresh picks up the new session id
    assert world.loads == 1


# Create and launch


@pytest.mark.asyncio
async def test_create_and_launch_outside_tmux(controller, world, tmp_path):
    wt_path = tmp_path / ".arbor/worktrees/TEAM-1"
    world.results["create_worktree"] = WorktreeResult(success=True, path=wt_path)
    show(controller, make_issue("TEAM-1", title="Add login"))

    press(controller, "w", "p")
    await controller.wait_idle()

    (args, _), = world.called("create_worktree")
    assert args == ("feature/TEAM-1-add-login", "main", tmp_path)
    assert CreationLog("Fetching origin...\n") in controller.store.history
    assert controller.state.creating_for_ticket is None
    assert controller.exit_lines == [f"ARBOR_CD:{wt_path}", "ARBOR_WORK:plan"]


@pytest.mark.asyncio
async def test_create_asks_about_init_script(controller, world, tmp_path):
    script = tmp_path / ".arbor" / "init.sh"
    script.parent.mkdir()
    script.write_text("#!/bin/sh\n")
    show(controller, make_issue("TEAM-1"))

    press(controller, "w", "2")
    assert controller.state.overlay == Overlay.CONFIRM_SETUP
    assert controller.state.setup_mode == "implement"

    press(controller, KEY_ESCAPE)
    assert controller.state.overlay is None
    await controller.wait_idle()
    assert world.called("create_worktree") == []


@pytest.mark.asyncio
async def test_setup_confirm_ignores_ticket_dropped_by_refresh(controller, world, tmp_path):
    script = tmp_path / ".arbor" / "init.sh"
    script.parent.mkdir()
    script.write_text("#!/bin/sh\n")
    show(controller, make_issue("TEAM-1"), make_issue("TEAM-2"))
    press(controller, KEY_DOWN, "w", "p")
    assert controller.state.overlay == Overlay.CONFIRM_SETUP
    assert controller.state.overlay_ticket == "TEAM-2"

    show(controller, make_issue("TEAM-1"))
    press(controller, "y")
    await controller.wait_idle()

    assert world.called("create_worktree") == []
    assert controller.state.overlay is None


@pytest.mark.asyncio
async def test_create_failure_reports_error(controller, world):
    world.results["create_worktree"] = WorktreeResult(success=False, error="branch exists")
    show(controller, make_issue("TEAM-1"))

    press(controller, "w", "p")
    await controller.wait_idle()

    assert controller.state.creating_for_ticket is None
    assert controller.state.creation_error == "branch exists"
    assert controller.state.action_message == "Failed: branch exists"
    assert not controller.exit_event.is_set()


@pytest.mark.asyncio
async def test_only_one_creation_at_a_time(controller, world):
    issue = make_issue("TEAM-2")
    show(controller, make_issue("TEAM-1"), issue)
    controller.dispatch(CreationStart("TEAM-1"))

    await controller.create_and_launch(issue, "plan", run_setup=False)

    assert world.called("pull_latest") == []
    assert world.called("create_worktree") == []
    assert controller.state.creating_for_ticket == "TEAM-1"
    assert controller.state.action_message == "Another worktree is being created"


@pytest.mark.asyncio
async def test_work_ignored_while_ticket_is_being_created(controller):
    show(controller, make_issue("TEAM-1"))
    controller.dispatch(CreationStart("TEAM-1"))
    press(controller, "w")
    assert controller.state.overlay is None


@pytest.mark.asyncio
async def test_create_crash_clears_creation_marker(controller, world, monkeypatch, tmp_path):
    async def create_worktree(branch, base, repo_root):
        raise OSError("disk full")

    monkeypatch.setattr(router, "create_worktree", create_worktree)
    show(controller, make_issue("TEAM-1"))

    press(controller, "w", "p")
    await controller.wait_idle()

    assert controller.state.creating_for_ticket is None
    assert controller.state.creation_error == "disk full"
    assert controller.state.action_message == "Failed: disk full"

    # The next attempt is not blocked by the failed one
    wt_path = tmp_path / ".arbor/worktrees/TEAM-1"

    async def create_ok(branch, base, repo_root):
        return WorktreeResult(success=True, path=wt_path)

    monkeypatch.setattr(router, "create_worktree", create_ok)
    press(controller, "w", "p")
    await controller.wait_idle()
    assert controller.exit_lines == [f"ARBOR_CD:{wt_path}", "ARBOR_WORK:plan"]


@pytest.mark.asyncio
async def test_mode_select_ignores_ticket_dropped_by_refresh(controller, world):
    show(controller, make_issue("TEAM-1"), make_issue("TEAM-2"))
    press(controller, KEY_DOWN, "w")
    assert controller.state.overlay_ticket == "TEAM-2"

    show(controller, make_issue("TEAM-1"))
    press(controller, "p")
    await controller.wait_idle()

    assert controller.state.overlay is None
    assert world.called("create_worktree") == []
    assert controller.state.action_message == "Ticket is no longer listed"


# Commit


@pytest.mark.asyncio
async def test_commit_workflow(controller, world, tmp_path):
    wt = make_worktree(tmp_path, "feature/TEAM-1", dirty=True)
    world.issues = [make_issue("TEAM-1", worktree=wt)]
    show(controller, *world.issues)

    press(controller, "C")
    assert controller.state.overlay == Overlay.COMMIT
    assert controller.state.commit.phase == CommitPhase.CONFIRM_STAGE

    press(controller, "y")
    await controller.wait_idle()
    assert controller.state.commit.phase == CommitPhase.AWAITING_MESSAGE
    assert controller.state.commit.message == "[TEAM-1] "

    press(controller, *"fix bug")
    press(controller, KEY_ENTER)
    await controller.wait_idle()

    assert world.called("commit") == [((tmp_path, "[TEAM-1] fix bug"), {})]
    assert world.called("push_branch") == [((tmp_path, "feature/TEAM-1"), {})]
    assert CommitDone() in controller.store.history
    assert controller.state.overlay is None
    assert world.loads == 1


@pytest.mark.asyncio
async def test_commit_needs_changes(controller, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, "C")
    assert controller.state.overlay is None
    assert controller.state.action_message == "No changes to commit"


@pytest.mark.asyncio
async def test_commit_empty_message_is_an_error(controller, world, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "b", dirty=True)))
    press(controller, "C", "y")
    await controller.wait_idle()

    press(controller, KEY_CTRL_U, KEY_ENTER)
    assert controller.state.commit.phase == CommitPhase.ERROR
    assert controller.state.commit.error == "Empty commit message"
    assert world.called("commit") == []


@pytest.mark.asyncio
async def test_commit_failure_skips_push(controller, world, tmp_path):
    world.results["commit"] = _fail("nothing added to commit")
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "b", dirty=True)))
    press(controller, "C", "y")
    await controller.wait_idle()
    press(controller, "x", KEY_ENTER)
    await controller.wait_idle()

    assert controller.state.commit.phase == CommitPhase.ERROR
    assert controller.state.commit.error == "nothing added to commit"
    assert world.called("push_branch") == []


@pytest.mark.asyncio
async def test_escape_ignored_while_committing(controller, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "b", dirty=True)))
    press(controller, "C")
    controller.dispatch(SetCommitPhase(CommitPhase.COMMITTING))
    press(controller, KEY_ESCAPE)
    assert controller.state.overlay == Overlay.COMMIT


@pytest.mark.asyncio
async def test_escape_cancels_before_staging(controller, world, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "b", dirty=True)))
    press(controller, "C", KEY_ESCAPE)
    assert controller.state.overlay is None
    assert world.called("stage_all") == []


# Pull request


@pytest.mark.asyncio
async def test_pr_create_fill(controller, world, tmp_path):
    url = "https://github.com/acme/app/pull/5"
    world.results["create_pr"] = CommandResult(
        returncode=0, stdout=f"Creating...\n{url}\n", stderr=""
    )
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))

    press(controller, "c")
    assert controller.state.pr_create.phase == PrCreatePhase.CHOOSE_MODE
    press(controller, "f")
    assert controller.state.pr_create.phase == PrCreatePhase.PUSHING
    await controller.wait_idle()

    (args, kwargs), = world.called("create_pr")
    assert args == (tmp_path, "main", "feature/TEAM-1")
    assert kwargs == {"title": None, "body": None}
    assert PrCreateDone(url) in controller.store.history
    assert controller.state.overlay is None
    assert world.loads == 1


@pytest.mark.asyncio
async def test_pr_create_refused_when_pr_exists(controller, tmp_path):
    wt = make_worktree(tmp_path, "feature/TEAM-1")
    show(controller, make_issue("TEAM-1", worktree=wt, pr=make_pr()))
    press(controller, "c")
    assert controller.state.overlay is None
    assert controller.state.action_message == "PR already exists"


@pytest.mark.asyncio
async def test_pr_push_failure_offers_browser(controller, world, tmp_path):
    world.results["push_branch"] = _fail("rejected")
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))

    press(controller, "c", "w")
    await controller.wait_idle()
    assert controller.state.pr_create.phase == PrCreatePhase.ERROR
    assert controller.state.pr_create.error == "rejected"
    assert world.called("create_pr_web") == []

    press(controller, "w")
    await controller.wait_idle()
    assert len(world.called("create_pr_web")) == 1
    assert controller.state.overlay is None


# Delete


@pytest.mark.asyncio
async def test_delete_dirty_worktree_forces(controller, world, tmp_path):
    wt = make_worktree(tmp_path, "feature/TEAM-1", dirty=True)
    show(controller, make_issue("TEAM-1", worktree=wt))

    press(controller, "d")
    assert controller.state.overlay == Overlay.CONFIRM_DELETE
    press(controller, "y")
    assert controller.state.deleting_for_ticket == "TEAM-1"
    await controller.wait_idle()

    assert world.called("remove_worktree") == [(("feature/TEAM-1", tmp_path), {"force": True})]
    assert controller.state.deleting_for_ticket is None
    assert controller.state.action_message == "Removed worktree for TEAM-1"
    assert world.loads == 1


@pytest.mark.asyncio
async def test_delete_declined(controller, world, tmp_path):
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, "d", "n")
    await controller.wait_idle()
    assert controller.state.overlay is None
    assert world.called("remove_worktree") == []


@pytest.mark.asyncio
async def test_delete_failure(controller, world, tmp_path):
    world.results["remove_worktree"] = WorktreeResult(success=False, error="locked")
    show(controller, make_issue("TEAM-1", worktree=make_worktree(tmp_path, "feature/TEAM-1")))
    press(controller, "d", "y")
    await controller.wait_idle()
    assert controller.state.deleting_for_ticket is None
    assert controller.state.action_message == "Failed: locked"
    assert world.loads == 0


@pytest.mark.asyncio
async def test_delete_confirms_the_ticket_it_was_opened_for(controller, world, tmp_path):
    dirty = make_worktree(tmp_path / "one", "feature/TEAM-1", dirty=True)
    clean = make_worktree(tmp_path / "two", "feature/TEAM-2")
    show(
        controller,
        make_issue("TEAM-1", worktree=dirty),
        make_issue("TEAM-2", worktree=clean),
    )
    press(controller, KEY_DOWN, "d")
    assert controller.state.overlay_ticket == "TEAM-2"

    # A refresh lands while the dialog is open and TEAM-2 is gone
    show(controller, make_issue("TEAM-1", worktree=dirty))
    assert controller.state.selected_issue.identifier == "TEAM-1"
    press(controller, "y")
    await controller.wait_idle()

    assert world.called("remove_worktree") == []
    assert controller.state.overlay is None
    assert controller.state.action_message == "Ticket is no longer listed"


@pytest.mark.asyncio
async def test_delete_survives_reordering_refresh(controller, world, tmp_path):
    one = make_worktree(tmp_path / "one", "feature/TEAM-1", dirty=True)
    two = make_worktree(tmp_path / "two", "feature/TEAM-2")
    show(controller, make_issue("TEAM-1", worktree=one), make_issue("TEAM-2", worktree=two))
    press(controller, KEY_DOWN, "d")

    show(controller, make_issue("TEAM-2", worktree=two), make_issue("TEAM-1", worktree=one))
    press(controller, "y")
    await controller.wait_idle()

    assert world.called("remove_worktree") == [(("feature/TEAM-2", tmp_path), {"force": False})]


# Mouse


@pytest.mark.asyncio
async def test_click_selects_issue(controller):
    # list rows: 0 columns, 1 project, 2 status, 3 TEAM-1, 4 TEAM-2; list starts on screen row 2
    show(controller, make_issue("TEAM-1"), make_issue("TEAM-2"))
    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, 5, 6))
    assert controller.state.selected_index == 1

    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, 5, 4))
    assert controller.state.selected_index == 1

    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, 80, 5))
    assert controller.state.selected_index == 1

    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, 5, 5))
    assert controller.state.selected_index == 0


@pytest.mark.asyncio
async def test_wheel_moves_selection_or_scrolls_details(controller):
    show(controller, *(make_issue(f"TEAM-{i}") for i in range(1, 6)))
    controller.handle_mouse(MouseEvent(MouseKind.SCROLL_DOWN, -1, 5, 5))
    assert controller.state.selected_index == 3
    controller.handle_mouse(MouseEvent(MouseKind.SCROLL_DOWN, -1, 5, 5))
    assert controller.state.selected_index == 4

    controller.handle_mouse(MouseEvent(MouseKind.SCROLL_DOWN, -1, 80, 5))
    assert controller.state.detail_scroll_offset == 3
    controller.handle_mouse(MouseEvent(MouseKind.SCROLL_UP, -1, 80, 5))
    controller.handle_mouse(MouseEvent(MouseKind.SCROLL_UP, -1, 80, 5))
    assert controller.state.detail_scroll_offset == 0


@pytest.mark.asyncio
async def test_drag_divider(controller):
    show(controller, make_issue("TEAM-1"))
    split = controller.split
    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, split.left_width + 2, 5))
    assert split.dragging
    controller.handle_mouse(MouseEvent(MouseKind.DRAG, 0, 61, 5))
    assert split.left_width == 60
    controller.handle_mouse(MouseEvent(MouseKind.RELEASE, 0, 61, 5))
    assert not split.dragging
    controller.handle_mouse(MouseEvent(MouseKind.DRAG, 0, 30, 5))
    assert split.left_width == 60


@pytest.mark.asyncio
async def test_overlay_blocks_clicks(controller):
    show(controller, make_issue("TEAM-1"), make_issue("TEAM-2"))
    press(controller, "w")
    controller.handle_mouse(MouseEvent(MouseKind.PRESS, 0, 5, 6))
    assert controller.state.selected_index == 0


# Refresh


@pytest.mark.asyncio
async def test_stale_refresh_is_discarded(controller, monkeypatch):
    gate = asyncio.Event()
    calls = 0

    async def load_dashboard_data(repo_root, config):
        nonlocal calls
        calls += 1
        if calls == 1:
            await gate.wait()
            groups = group_issues([make_issue("OLD-1")])
        else:
            groups = group_issues([make_issue("NEW-1")])
        return groups, flatten(groups)

    monkeypatch.setattr(router, "load_dashboard_data", load_dashboard_data)

    first = asyncio.create_task(controller.load())
    await asyncio.sleep(0)
    await controller.load()
    gate.set()
    await first

    assert [di.identifier for di in controller.state.flat_issues] == ["NEW-1"]
    assert not controller.state.refreshing


@pytest.mark.asyncio
async def test_load_failure_sets_error(controller, monkeypatch):
    async def load_dashboard_data(repo_root, config):
        raise RuntimeError("gh exploded")

    monkeypatch.setattr(router, "load_dashboard_data", load_dashboard_data)
    await controller.load(initial=True)
    assert controller.state.error == "gh exploded"
    assert not controller.state.loading


@pytest.mark.asyncio
async def test_load_outside_repository(world):
    ctl = DashboardController(Store(), None, Config(), PaneSplit(100))
    await ctl.load(initial=True)
    assert ctl.state.error == "Not inside a git repository"
    assert world.loads == 0


# Helpers


@pytest.mark.parametrize(
    "text,expected",
    [
        ("fix bug", "[TEAM-1] fix bug"),
        ("  fix bug  ", "[TEAM-1] fix bug"),
        ("[TEAM-1] fix bug", "[TEAM-1] fix bug"),
        ("fix bug [TEAM-1]", "fix bug [TEAM-1]"),
        ("   ", None),
        ("", None),
    ],
)
def test_commit_message(text, expected):
    assert commit_message(text, "TEAM-1") == expected


def test_edit_text():
    assert edit_text("ab", "c") == "abc"
    assert edit_text("abc", "\x7f") == "ab"
    assert edit_text("", "\x7f") == ""
    assert edit_text("abc", "\x15") == ""
    assert edit_text("abc", KEY_DOWN) is None
    assert edit_text("abc", KEY_ENTER) is None
