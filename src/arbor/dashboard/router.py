"""Input routing and workflows for the dashboard.

DashboardController turns key presses and mouse events into actions on the
Store, and runs the multi-step workflows (create worktree, commit, create
PR, delete) as asyncio tasks that report progress through further
actions. It never mutates the state directly.
"""

from __future__ import annotations

import asyncio
import os
import shlex
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from arbor import tmux
from arbor.agent import (
    build_pr_body_prompt,
    generate_text,
    resolve_agent_binary,
    resume_command,
    work_command,
)
from arbor.config import Config
from arbor.dashboard.data import load_dashboard_data
from arbor.dashboard.input import (
    KEY_BACKSPACE,
    KEY_CTRL_U,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_SHIFT_DOWN,
    KEY_SHIFT_UP,
    KEY_UP,
    InputEvent,
    MouseEvent,
    MouseKind,
)
from arbor.dashboard.layout import (
    HEADER_HEIGHT,
    PaneSplit,
    flat_index_for_list_row,
    list_visible_rows,
    row_index_for_flat_index,
    scroll_to_reveal,
)
from arbor.dashboard.state import (
    Action,
    ClearError,
    CommitCancel,
    CommitDone,
    CommitError,
    CommitMessage,
    CommitPhase,
    CommitStart,
    CreationDone,
    CreationError,
    CreationLog,
    CreationStart,
    DashboardIssue,
    DashboardState,
    DeleteDone,
    DeleteStart,
    Overlay,
    PrCreateCancel,
    PrCreateDone,
    PrCreateError,
    PrCreatePhase,
    PrCreateStart,
    RefreshStart,
    ScrollDetail,
    ScrollList,
    Select,
    SetActionMessage,
    SetCommitPhase,
    SetData,
    SetError,
    SetOverlay,
    SetPrCreatePhase,
    SetupConfirmDone,
    SetupConfirmShow,
    Store,
    WorktreeInfo,
)
from arbor.git import (
    branch_name_for_ticket,
    commit,
    create_worktree,
    get_base_branch,
    get_commit_log,
    get_default_branch,
    get_diff_stat,
    get_first_commit_subject,
    has_init_script,
    pull_latest,
    remove_worktree,
    stage_all,
)
from arbor.github import create_pr, create_pr_web, push_branch
from arbor.log import log
from arbor.paths import get_init_script_path
from arbor.process import open_url, spawn_detached, stream_command

COMMIT_CLOSE_DELAY = 2.0
PR_CLOSE_DELAY = 2.5
# The agent writes its session id some time after it starts
SESSION_REFRESH_DELAY = 3.0

# Phases where an external effect is in flight and can't be abandoned
_COMMIT_BUSY = (CommitPhase.COMMITTING, CommitPhase.PUSHING)
_PR_BUSY = (PrCreatePhase.PUSHING, PrCreatePhase.CREATING)


class DashboardController:
    """Routes input to actions and runs workflows against collaborators."""

    def __init__(
        self,
        store: Store,
        repo_root: Path | None,
        config: Config,
        split: PaneSplit,
        screen_height: int = 24,
    ):
        self.store = store
        self.repo_root = repo_root
        self.config = config
        self.split = split
        self.screen_height = screen_height
        self.commit_close_delay = COMMIT_CLOSE_DELAY
        self.pr_close_delay = PR_CLOSE_DELAY
        self.session_refresh_delay = SESSION_REFRESH_DELAY

        self.exit_event = asyncio.Event()
        self.exit_lines: list[str] = []

        self._tasks: set[asyncio.Task] = set()
        self._generation = 0
        self._completed_generation = 0
        self._staging = False

    @property
    def state(self) -> DashboardState:
        return self.store.state

    def dispatch(self, action: Action) -> None:
        self.store.dispatch(action)
        self._keep_selection_visible()

    def message(self, text: str) -> None:
        self.dispatch(SetActionMessage(text))

    def _keep_selection_visible(self) -> None:
        state = self.store.state
        row = row_index_for_flat_index(state.groups, state.selected_index)
        offset = scroll_to_reveal(
            row, state.list_scroll_offset, list_visible_rows(self.screen_height)
        )
        if offset != state.list_scroll_offset:
            self.store.dispatch(ScrollList(offset))

    def resize(self, columns: int, rows: int) -> None:
        self.split.resize(columns)
        self.screen_height = rows
        self._keep_selection_visible()

    # Task management

    def spawn(self, coro: Awaitable[None], name: str = "workflow") -> asyncio.Task:
        """Run a workflow in the background, keeping a reference until it ends."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and (exc := t.exception()) is not None:
                log(f"{name} failed: {exc!r}")
                self.message(f"{name} failed: {exc}")

        task.add_done_callback(_done)
        return task

    def after(self, delay: float, callback: Callable[[], None]) -> None:
        """One-shot timer; harmless if it fires after the user has moved on."""

        async def _timer() -> None:
            await asyncio.sleep(delay)
            callback()

        self.spawn(_timer(), name="timer")

    async def wait_idle(self) -> None:
        """Wait until no workflow or timer is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def quit(self, lines: Sequence[str] = ()) -> None:
        """Stop the dashboard; lines are printed once the terminal is restored."""
        self.exit_lines = list(lines)
        self.exit_event.set()

    # Data

    def refresh(self) -> None:
        self.spawn(self.load(), name="refresh")

    async def load(self, initial: bool = False) -> None:
        """Reload the view model. Results older than the newest applied one are dropped."""
        self._generation += 1
        generation = self._generation
        if not initial:
            self.dispatch(RefreshStart())
        log(f"refresh #{generation} started")

        if self.repo_root is None:
            self.dispatch(SetError("Not inside a git repository"))
            return

        try:
            groups, flat = await load_dashboard_data(self.repo_root, self.config)
        except Exception as e:
            # The one place a load failure is turned into UI state
            if generation < self._completed_generation:
                return
            self._completed_generation = generation
            log(f"refresh #{generation} failed: {e}")
            self.dispatch(SetError(str(e) or type(e).__name__))
            return

        if generation < self._completed_generation:
            log(f"refresh #{generation} discarded as stale")
            return
        self._completed_generation = generation
        self.dispatch(SetData(groups, flat))
        log(f"refresh #{generation} done: {len(flat)} issues")

    # Input

    def handle_input(self, event: InputEvent) -> None:
        if isinstance(event, MouseEvent):
            self.handle_mouse(event)
        else:
            self.handle_key(event)

    def handle_key(self, key: str) -> None:
        state = self.state
        if state.action_message and key != "q":
            self.dispatch(SetActionMessage(None))

        if state.overlay is not None:
            self._handle_overlay_key(state, key)
            return

        if key == "q":
            self.quit()
            return

        if state.error:
            if key == "R":
                self.dispatch(ClearError())
                self.refresh()
            return

        last = len(state.flat_issues) - 1
        if key in ("j", KEY_DOWN):
            if last >= 0:
                self.dispatch(Select(min(state.selected_index + 1, last)))
            return
        if key in ("k", KEY_UP):
            if last >= 0:
                self.dispatch(Select(max(state.selected_index - 1, 0)))
            return
        step = self.config.dashboard.detail_scroll_step
        if key == KEY_SHIFT_DOWN:
            self.dispatch(ScrollDetail(state.detail_scroll_offset + step))
            return
        if key == KEY_SHIFT_UP:
            self.dispatch(ScrollDetail(max(0, state.detail_scroll_offset - step)))
            return
        if key == "R":
            self.refresh()
            return
        if key == "E":
            self.open_workspace()
            return

        issue = state.selected_issue
        if issue is None:
            return
        handler = self._issue_keys().get(key)
        if handler is not None:
            handler(issue)

    def _issue_keys(self) -> dict[str, Callable[[DashboardIssue], None]]:
        return {
            "w": self.start_work,
            KEY_ENTER: self.switch_to_worktree,
            "o": self.open_ticket,
            "p": self.open_pr,
            "c": self.start_pr_create,
            "r": self.launch_review,
            "e": self.open_in_editor,
            "C": self.start_commit,
            "f": self.launch_fix,
            "d": self.confirm_delete,
        }

    def _handle_overlay_key(self, state: DashboardState, key: str) -> None:
        overlay = state.overlay
        if overlay == Overlay.COMMIT:
            self._commit_key(state, key)
        elif overlay == Overlay.PR_CREATE:
            self._pr_create_key(state, key)
        elif overlay == Overlay.CONFIRM_SETUP:
            mode = state.setup_mode
            if key == KEY_ESCAPE:
                self.dispatch(SetupConfirmDone())
            elif key in ("y", "n") and mode:
                self.dispatch(SetupConfirmDone())
                if (issue := state.overlay_issue) is None:
                    self.message("Ticket is no longer listed")
                    return
                self.spawn(self.create_and_launch(issue, mode, run_setup=key == "y"), "create")
        elif overlay == Overlay.MODE_SELECT:
            if key in ("p", "1"):
                self.do_work("plan")
            elif key in ("i", "2"):
                self.do_work("implement")
            elif key in (KEY_ESCAPE, "q"):
                self.dispatch(SetOverlay(None))
        elif overlay == Overlay.CONFIRM_DELETE:
            if key == "y":
                self.dispatch(SetOverlay(None))
                if (issue := state.overlay_issue) is None:
                    self.message("Ticket is no longer listed")
                else:
                    self.delete_worktree(issue)
            elif key in ("n", KEY_ESCAPE, "q"):
                self.dispatch(SetOverlay(None))

    def _commit_key(self, state: DashboardState, key: str) -> None:
        phase = state.commit.phase
        if key == KEY_ESCAPE:
            if phase not in _COMMIT_BUSY:
                self.dispatch(CommitCancel())
            return
        if phase == CommitPhase.CONFIRM_STAGE:
            if key == "y":
                self.spawn(self.stage_changes(), "stage")
            elif key == "n":
                self.dispatch(CommitCancel())
        elif phase == CommitPhase.AWAITING_MESSAGE:
            if key == KEY_ENTER:
                self.submit_commit(state.commit.message)
            elif (edited := edit_text(state.commit.message, key)) is not None:
                self.dispatch(CommitMessage(edited))

    def _pr_create_key(self, state: DashboardState, key: str) -> None:
        phase = state.pr_create.phase
        if key == KEY_ESCAPE:
            if phase not in _PR_BUSY:
                self.dispatch(PrCreateCancel())
            return
        if phase == PrCreatePhase.CHOOSE_MODE:
            if key == "f":
                self.create_pull_request(fill=True)
            elif key == "w":
                self.create_pull_request(fill=False)
        elif phase == PrCreatePhase.ERROR and key == "w":
            self.spawn(self.open_pr_form(), "pr-create")

    def handle_mouse(self, event: MouseEvent) -> None:
        split = self.split
        if event.kind == MouseKind.RELEASE:
            split.dragging = False
            return
        if event.kind == MouseKind.DRAG:
            if split.dragging:
                split.drag_to(event.col)
            return

        state = self.state
        if state.overlay is not None:
            return

        if event.kind in (MouseKind.SCROLL_UP, MouseKind.SCROLL_DOWN):
            step = self.config.dashboard.wheel_step
            delta = step if event.kind == MouseKind.SCROLL_DOWN else -step
            if event.col <= split.left_width:
                last = len(state.flat_issues) - 1
                if last >= 0:
                    self.dispatch(Select(max(0, min(state.selected_index + delta, last))))
            else:
                self.dispatch(ScrollDetail(max(0, state.detail_scroll_offset + delta)))
            return

        if event.kind != MouseKind.PRESS or event.button != 0:
            return

        if split.on_divider(event.col):
            split.dragging = True
            return

        if state.loading or state.error or not state.flat_issues:
            return
        if event.col > split.left_width:
            return
        # Screen row 1 is the header; the list starts on row 2
        content_row = event.row - 1 - HEADER_HEIGHT
        if content_row < 0 or content_row >= list_visible_rows(self.screen_height):
            return
        index = flat_index_for_list_row(state.groups, state.list_scroll_offset + content_row)
        if index is not None and 0 <= index < len(state.flat_issues):
            self.dispatch(Select(index))

    # Work / launch

    def start_work(self, issue: DashboardIssue) -> None:
        if issue.identifier in (self.state.creating_for_ticket, self.state.deleting_for_ticket):
            return
        if issue.worktree is not None and issue.worktree.session_id:
            self.message("Session active. Press Enter to resume.")
            return
        self.dispatch(SetOverlay(Overlay.MODE_SELECT, issue.identifier))

    def do_work(self, mode: str) -> None:
        issue = self.state.overlay_issue
        self.dispatch(SetOverlay(None))
        if issue is None:
            self.message("Ticket is no longer listed")
            return
        if self.repo_root is None:
            return

        if issue.worktree is not None:
            if tmux.in_tmux():
                self.spawn(self.launch_in_tmux(issue, mode, issue.worktree.path), "launch")
            else:
                self.quit([f"ARBOR_CD:{issue.worktree.path}", f"ARBOR_WORK:{mode}"])
            return

        if has_init_script(self.repo_root):
            self.dispatch(SetupConfirmShow(mode, issue.identifier))
            return
        self.spawn(self.create_and_launch(issue, mode, run_setup=False), "create")

    def _agent_resume(self, issue: DashboardIssue) -> str | None:
        session_id = issue.worktree.session_id if issue.worktree else None
        if not session_id:
            return None
        binary = resolve_agent_binary(self.config)
        return resume_command(binary, session_id) if binary else None

    async def launch_in_tmux(self, issue: DashboardIssue, mode: str, path: Path) -> None:
        """Run the agent in the ticket's tmux window, creating it if needed."""
        window = issue.identifier
        resume = self._agent_resume(issue)
        command = resume or work_command(self.config, mode)

        if tmux.select_window(window):
            tmux.send_keys(window, command)
            if resume:
                self.message(f"Resumed session in: {window}")
            else:
                self.message(f"Launched {mode} in: {window}")
        elif await tmux.open_window_with_command(window, path, command):
            if resume:
                self.message(f"Resumed session in new window: {window}")
            else:
                self.message(f"Launched {mode} in tmux window: {window}")
        else:
            self.message("Failed to create tmux window")
        log(f"launch {mode} for {window}: {command}")
        self.after(self.session_refresh_delay, self.refresh)

    def switch_to_worktree(self, issue: DashboardIssue) -> None:
        wt = issue.worktree
        if wt is None:
            self.message("No worktree to switch to")
            return
        if not tmux.in_tmux():
            self.quit([f"ARBOR_CD:{wt.path}"])
            return
        if tmux.select_window(issue.identifier):
            return
        command = self._agent_resume(issue) or work_command(self.config, "implement")
        self.spawn(self._open_window(issue.identifier, wt.path, command), "switch")

    async def _open_window(self, window: str, path: Path, command: str) -> None:
        if not await tmux.open_window_with_command(window, path, command):
            self.message("Failed to switch tmux window")

    def _launch_side_mode(self, issue: DashboardIssue, mode: str, missing: str) -> None:
        wt = issue.worktree
        if issue.pr is None or wt is None:
            self.message(missing)
            return
        if not tmux.in_tmux():
            self.quit([f"ARBOR_CD:{wt.path}", f"ARBOR_WORK:{mode}"])
            return
        window = f"{mode}-{issue.identifier}"
        self.spawn(self._launch_window(window, wt.path, mode), mode)

    async def _launch_window(self, window: str, path: Path, mode: str) -> None:
        if await tmux.open_window_with_command(window, path, work_command(self.config, mode)):
            self.message(f"Launched {mode} in tmux")
        else:
            self.message(f"Failed to launch {mode}")

    def launch_review(self, issue: DashboardIssue) -> None:
        self._launch_side_mode(issue, "review", "No PR to review")

    def launch_fix(self, issue: DashboardIssue) -> None:
        self._launch_side_mode(issue, "fix", "No PR to fix")

    # Create and launch

    async def create_and_launch(self, issue: DashboardIssue, mode: str, run_setup: bool) -> None:
        """Fetch latest, create the worktree, optionally run init.sh, then launch."""
        repo_root = self.repo_root
        if repo_root is None:
            return
        if self.state.creating_for_ticket is not None:
            log(f"create for {issue.identifier} ignored: creation already in progress")
            self.message("Another worktree is being created")
            return

        ticket_id = issue.identifier
        self.dispatch(CreationStart(ticket_id))
        try:
            path = await self._create_worktree(issue, repo_root, run_setup)
        except Exception as e:
            log(f"create {ticket_id} crashed: {e!r}")
            self.dispatch(CreationError(str(e)))
            self.message(f"Failed: {e}")
            return
        if path is not None:
            await self.launch_after_creation(ticket_id, mode, path)

    async def _create_worktree(
        self, issue: DashboardIssue, repo_root: Path, run_setup: bool
    ) -> Path | None:
        ticket_id = issue.identifier
        branch = branch_name_for_ticket(ticket_id, issue.ticket.title)
        base = await asyncio.to_thread(get_default_branch, repo_root)

        def step(text: str) -> None:
            self.dispatch(CreationLog(f"{text}\n"))

        pulled = await pull_latest(base, repo_root, on_step=step)
        if pulled.ok:
            step(f"Pulled latest {base}")
        else:
            # Best-effort: a stale base is better than no worktree
            step(f"Warning: {pulled.error}")
            log(f"create {ticket_id}: pull failed: {pulled.error}")

        step(f"Creating worktree {branch}...")
        result = await create_worktree(branch, base, repo_root)
        if not result.success or result.path is None:
            error = result.error or "Unknown error"
            log(f"create {ticket_id} failed: {error}")
            self.dispatch(CreationError(error))
            self.message(f"Failed: {error}")
            return None
        step(f"Worktree created at {result.path}")

        if run_setup:
            await self._run_init_script(repo_root, result.path)

        self.dispatch(CreationDone())
        log(f"create {ticket_id}: worktree ready at {result.path}")
        return result.path

    async def _run_init_script(self, repo_root: Path, worktree_path: Path) -> None:
        script = get_init_script_path(repo_root)
        if not os.access(script, os.X_OK):
            self.dispatch(CreationLog("Warning: init.sh exists but is not executable, skipping\n"))
            return

        self.dispatch(CreationLog("Running init.sh...\n"))
        code = await stream_command(
            [str(script)],
            on_output=lambda chunk: self.dispatch(CreationLog(chunk)),
            cwd=worktree_path,
            env={
                "ARBOR_WORKTREE_PATH": str(worktree_path),
                "ARBOR_REPO_ROOT": str(repo_root),
            },
        )
        if code != 0:
            self.dispatch(CreationLog(f"\nInit script exited with code {code}\n"))
        else:
            self.dispatch(CreationLog("\nSetup complete!\n"))

    async def launch_after_creation(self, ticket_id: str, mode: str, path: Path) -> None:
        if not tmux.in_tmux():
            self.quit([f"ARBOR_CD:{path}", f"ARBOR_WORK:{mode}"])
            return
        if await tmux.open_window_with_command(ticket_id, path, work_command(self.config, mode)):
            self.message(f"Created worktree + launched {mode} in: {ticket_id}")
        else:
            self.message("Worktree created, but tmux failed")
        self.after(self.session_refresh_delay, self.refresh)

    # Links and editors

    def open_ticket(self, issue: DashboardIssue) -> None:
        if not issue.ticket.url:
            self.message("No ticket URL")
            return
        opened = open_url(issue.ticket.url)
        self.message("Opened in browser" if opened else "Failed to open browser")

    def open_pr(self, issue: DashboardIssue) -> None:
        if issue.pr is None or not issue.pr.url:
            self.message("No PR to open")
            return
        self.message("Opened PR in browser" if open_url(issue.pr.url) else "Failed to open browser")

    def _editor(self) -> list[str]:
        return shlex.split(self.config.editor.command) or ["code"]

    def open_in_editor(self, issue: DashboardIssue) -> None:
        if issue.worktree is None:
            self.message("No worktree to open")
            return
        editor = self._editor()
        if spawn_detached([*editor, str(issue.worktree.path)]):
            self.message(f"Opened {issue.worktree.path.name} in {editor[0]}")
        else:
            self.message(f"Failed to start {editor[0]}")

    def open_workspace(self) -> None:
        if self.repo_root is None:
            return
        workspaces = sorted(self.repo_root.glob("*.code-workspace"))
        if not workspaces:
            self.message("No .code-workspace file found")
            return
        editor = self._editor()
        if spawn_detached([*editor, str(workspaces[0])]):
            self.message(f"Opened workspace in {editor[0]}")
        else:
            self.message("Failed to open workspace")

    # Commit

    def start_commit(self, issue: DashboardIssue) -> None:
        wt = issue.worktree
        if wt is None:
            self.message("No worktree")
            return
        if not wt.dirty:
            self.message("No changes to commit")
            return
        self.dispatch(CommitStart(issue.identifier, wt.path, wt.branch, wt.git_status))

    async def stage_changes(self) -> None:
        flow = self.state.commit
        if flow.worktree_path is None or self._staging:
            return
        self._staging = True
        try:
            result = await stage_all(flow.worktree_path)
        finally:
            self._staging = False
        if not self._commit_flow_is(flow.ticket_id):
            return
        if not result.ok:
            self.dispatch(CommitError(result.error or "Failed to stage"))
            return
        self.dispatch(CommitMessage(f"[{flow.ticket_id}] "))
        self.dispatch(SetCommitPhase(CommitPhase.AWAITING_MESSAGE))

    def _commit_flow_is(self, ticket_id: str | None) -> bool:
        state = self.state
        return state.overlay == Overlay.COMMIT and state.commit.ticket_id == ticket_id

    def submit_commit(self, text: str) -> None:
        """Validate the message, then commit and push in the background."""
        flow = self.state.commit
        if flow.worktree_path is None or flow.branch is None:
            return
        message = commit_message(text, flow.ticket_id)
        if message is None:
            self.dispatch(CommitError("Empty commit message"))
            return
        self.dispatch(CommitMessage(message))
        self.dispatch(SetCommitPhase(CommitPhase.COMMITTING))
        self.spawn(
            self._commit_and_push(flow.ticket_id, flow.worktree_path, flow.branch, message),
            "commit",
        )

    async def _commit_and_push(
        self, ticket_id: str | None, worktree_path: Path, branch: str, message: str
    ) -> None:
        result = await commit(worktree_path, message)
        if not result.ok:
            log(f"commit {ticket_id} failed: {result.error}")
            self.dispatch(CommitError(result.error or "Commit failed"))
            return

        self.dispatch(SetCommitPhase(CommitPhase.PUSHING))
        result = await push_branch(worktree_path, branch)
        if not result.ok:
            log(f"push {branch} failed: {result.error}")
            self.dispatch(CommitError(result.error or "Push failed"))
            return

        self.dispatch(CommitDone())
        log(f"commit {ticket_id}: committed and pushed {branch}")
        self.after(self.commit_close_delay, lambda: self._close_done_commit(ticket_id))

    def _close_done_commit(self, ticket_id: str | None) -> None:
        if self._commit_flow_is(ticket_id) and self.state.commit.phase == CommitPhase.DONE:
            self.dispatch(CommitCancel())
        self.refresh()

    # Pull request

    def start_pr_create(self, issue: DashboardIssue) -> None:
        wt = issue.worktree
        if wt is None:
            self.message("Create a worktree first (w)")
            return
        if issue.pr is not None:
            self.message("PR already exists")
            return
        self.dispatch(PrCreateStart(issue.identifier, wt.path, wt.branch))

    def create_pull_request(self, fill: bool) -> None:
        """Push the branch, then create the PR from the commits or in the browser."""
        flow = self.state.pr_create
        if flow.worktree_path is None or flow.branch is None or self.repo_root is None:
            return
        self.dispatch(SetPrCreatePhase(PrCreatePhase.PUSHING))
        self.spawn(
            self._push_and_create(
                flow.ticket_id, self.repo_root, flow.worktree_path, flow.branch, fill
            ),
            "pr-create",
        )

    async def _push_and_create(
        self,
        ticket_id: str | None,
        repo_root: Path,
        worktree_path: Path,
        branch: str,
        fill: bool,
    ) -> None:
        base = await asyncio.to_thread(get_base_branch, branch, repo_root)
        pushed = await push_branch(worktree_path, branch)
        if not pushed.ok:
            log(f"push {branch} failed: {pushed.error}")
            self.dispatch(PrCreateError(pushed.error or "Push failed"))
            return

        self.dispatch(SetPrCreatePhase(PrCreatePhase.CREATING))
        if fill:
            title, body = await self._draft_pr(worktree_path, branch, ticket_id, base)
            result = await create_pr(worktree_path, base, branch, title=title, body=body)
        else:
            result = await create_pr_web(worktree_path, base, branch)

        if not result.ok:
            log(f"pr create {branch} failed: {result.error}")
            self.dispatch(PrCreateError(result.error or "PR creation failed"))
            return

        output = result.stdout.strip()
        url = output.splitlines()[-1] if fill and output else ""
        self.dispatch(PrCreateDone(url))
        log(f"pr create {branch}: {url or 'opened in browser'}")
        self.after(self.pr_close_delay, lambda: self._close_done_pr(ticket_id))

    async def _draft_pr(
        self, worktree_path: Path, branch: str, ticket_id: str | None, base: str
    ) -> tuple[str | None, str | None]:
        """Title from the first commit, body written by the agent. (None, None) to let gh fill."""
        binary = resolve_agent_binary(self.config)
        if binary is None:
            return None, None
        commit_log, diff_stat, subject = await asyncio.gather(
            get_commit_log(worktree_path, base),
            get_diff_stat(worktree_path, base),
            get_first_commit_subject(worktree_path, base),
        )
        if not subject:
            return None, None
        body = await generate_text(
            binary, build_pr_body_prompt(ticket_id, branch, commit_log, diff_stat), worktree_path
        )
        if not body:
            return None, None
        return subject, body

    async def open_pr_form(self) -> None:
        """Open the browser form without pushing again; used after a failure."""
        flow = self.state.pr_create
        if flow.worktree_path is None or flow.branch is None or self.repo_root is None:
            return
        base = await asyncio.to_thread(get_base_branch, flow.branch, self.repo_root)
        result = await create_pr_web(flow.worktree_path, base, flow.branch)
        if result.ok:
            self.dispatch(PrCreateDone(""))
            self.after(self.pr_close_delay, lambda: self._close_done_pr(flow.ticket_id))
        else:
            self.dispatch(PrCreateError(result.error or "Failed to open browser"))

    def _close_done_pr(self, ticket_id: str | None) -> None:
        state = self.state
        if (
            state.overlay == Overlay.PR_CREATE
            and state.pr_create.ticket_id == ticket_id
            and state.pr_create.phase == PrCreatePhase.DONE
        ):
            self.dispatch(PrCreateCancel())
        self.refresh()

    # Delete

    def confirm_delete(self, issue: DashboardIssue) -> None:
        if issue.worktree is None:
            self.message("No worktree to remove")
            return
        if issue.identifier in (self.state.deleting_for_ticket, self.state.creating_for_ticket):
            return
        self.dispatch(SetOverlay(Overlay.CONFIRM_DELETE, issue.identifier))

    def delete_worktree(self, issue: DashboardIssue) -> None:
        if issue.worktree is None or self.repo_root is None:
            return
        if self.state.deleting_for_ticket is not None:
            log(f"delete for {issue.identifier} ignored: removal already in progress")
            return
        self.dispatch(DeleteStart(issue.identifier))
        self.spawn(self._remove(issue.identifier, issue.worktree, self.repo_root), "delete")

    async def _remove(self, ticket_id: str, worktree: WorktreeInfo, repo_root: Path) -> None:
        force = worktree.dirty
        try:
            result = await remove_worktree(worktree.branch, repo_root, force=force)
        finally:
            self.dispatch(DeleteDone())
        if result.success:
            log(f"removed worktree for {ticket_id} (force={force})")
            self.message(f"Removed worktree for {ticket_id}")
            self.refresh()
        else:
            log(f"remove {ticket_id} failed: {result.error}")
            self.message(f"Failed: {result.error or 'Unknown error'}")


def commit_message(text: str, ticket_id: str | None) -> str | None:
    """Final commit message, prefixed with the ticket id. None if empty."""
    trimmed = text.strip()
    if not trimmed:
        return None
    if ticket_id is None or f"[{ticket_id}]" in trimmed:
        return trimmed
    return f"[{ticket_id}] {trimmed}"


def edit_text(value: str, key: str) -> str | None:
    """Apply a key to a single-line text field. None if the key isn't editing input."""
    if key == KEY_BACKSPACE:
        return value[:-1]
    if key == KEY_CTRL_U:
        return ""
    if len(key) == 1 and key.isprintable():
        return value + key
    return None
