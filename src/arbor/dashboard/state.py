"""Dashboard state, actions and the reducer that applies them.

The state is an immutable snapshot. Every change goes through `reduce`,
which is pure: it never performs I/O and never mutates its inputs.
`Store` holds the current snapshot and notifies listeners after each
dispatch.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Union

from arbor.github import PRCheck, PRInfo, PRReview
from arbor.linear import Ticket


class Overlay(Enum):
    """Modal overlays. At most one is active."""

    MODE_SELECT = "mode-select"
    CONFIRM_DELETE = "confirm-delete"
    CONFIRM_SETUP = "confirm-setup"
    COMMIT = "commit"
    PR_CREATE = "pr-create"


class CommitPhase(Enum):
    IDLE = "idle"
    CONFIRM_STAGE = "confirm-stage"
    AWAITING_MESSAGE = "awaiting-message"
    COMMITTING = "committing"
    PUSHING = "pushing"
    DONE = "done"
    ERROR = "error"


class PrCreatePhase(Enum):
    IDLE = "idle"
    CHOOSE_MODE = "choose-mode"
    PUSHING = "pushing"
    CREATING = "creating"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class WorktreeInfo:
    """Live state of a worktree matched to a ticket."""

    path: Path
    branch: str
    dirty: bool
    commits_ahead: int
    session_id: str | None
    git_status: str


@dataclass(frozen=True)
class DashboardIssue:
    """A ticket joined with its worktree, PR, checks and reviews.

    checks/reviews are None when unknown or not applicable (no PR), which
    is distinct from an empty list.
    """

    ticket: Ticket
    worktree: WorktreeInfo | None = None
    pr: PRInfo | None = None
    checks: tuple[PRCheck, ...] | None = None
    reviews: tuple[PRReview, ...] | None = None

    @property
    def identifier(self) -> str:
        return self.ticket.identifier


@dataclass(frozen=True)
class StatusGroup:
    name: str
    type: str
    issues: tuple[DashboardIssue, ...]


@dataclass(frozen=True)
class ProjectGroup:
    name: str
    id: str | None
    status_groups: tuple[StatusGroup, ...]

    @property
    def issues(self) -> list[DashboardIssue]:
        return [di for sg in self.status_groups for di in sg.issues]


@dataclass(frozen=True)
class CommitFlow:
    """Commit overlay fields; meaningful only while the overlay is open."""

    phase: CommitPhase = CommitPhase.IDLE
    message: str = ""
    error: str | None = None
    ticket_id: str | None = None
    worktree_path: Path | None = None
    branch: str | None = None
    git_status: str = ""


@dataclass(frozen=True)
class PrCreateFlow:
    """PR-create overlay fields; meaningful only while the overlay is open."""

    phase: PrCreatePhase = PrCreatePhase.IDLE
    ticket_id: str | None = None
    worktree_path: Path | None = None
    branch: str | None = None
    error: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class DashboardState:
    groups: tuple[ProjectGroup, ...] = ()
    flat_issues: tuple[DashboardIssue, ...] = ()
    selected_index: int = 0
    list_scroll_offset: int = 0
    detail_scroll_offset: int = 0
    loading: bool = True
    refreshing: bool = False
    error: str | None = None
    overlay: Overlay | None = None
    # Ticket the open overlay acts on, independent of later selection changes
    overlay_ticket: str | None = None
    action_message: str | None = None
    creating_for_ticket: str | None = None
    creation_logs: str = ""
    creation_error: str | None = None
    deleting_for_ticket: str | None = None
    setup_mode: str | None = None
    commit: CommitFlow = field(default_factory=CommitFlow)
    pr_create: PrCreateFlow = field(default_factory=PrCreateFlow)

    @property
    def selected_issue(self) -> DashboardIssue | None:
        if 0 <= self.selected_index < len(self.flat_issues):
            return self.flat_issues[self.selected_index]
        return None

    @property
    def overlay_issue(self) -> DashboardIssue | None:
        """The issue the overlay was opened for, if it is still listed."""
        if self.overlay_ticket is None:
            return None
        for issue in self.flat_issues:
            if issue.identifier == self.overlay_ticket:
                return issue
        return None


# Actions


@dataclass(frozen=True)
class SetData:
    groups: tuple[ProjectGroup, ...]
    flat_issues: tuple[DashboardIssue, ...]


@dataclass(frozen=True)
class Select:
    index: int


@dataclass(frozen=True)
class ScrollList:
    offset: int


@dataclass(frozen=True)
class ScrollDetail:
    offset: int


@dataclass(frozen=True)
class RefreshStart:
    pass


@dataclass(frozen=True)
class RefreshDone:
    pass


@dataclass(frozen=True)
class SetError:
    error: str


@dataclass(frozen=True)
class ClearError:
    pass


@dataclass(frozen=True)
class SetOverlay:
    overlay: Overlay | None
    ticket_id: str | None = None


@dataclass(frozen=True)
class SetActionMessage:
    message: str | None


@dataclass(frozen=True)
class CreationStart:
    ticket_id: str


@dataclass(frozen=True)
class CreationLog:
    logs: str


@dataclass(frozen=True)
class CreationDone:
    pass


@dataclass(frozen=True)
class CreationError:
    error: str


@dataclass(frozen=True)
class DeleteStart:
    ticket_id: str


@dataclass(frozen=True)
class DeleteDone:
    pass


@dataclass(frozen=True)
class SetupConfirmShow:
    mode: str
    ticket_id: str | None = None


@dataclass(frozen=True)
class SetupConfirmDone:
    pass


@dataclass(frozen=True)
class CommitStart:
    ticket_id: str
    worktree_path: Path
    branch: str
    git_status: str


@dataclass(frozen=True)
class SetCommitPhase:
    phase: CommitPhase


@dataclass(frozen=True)
class CommitMessage:
    message: str


@dataclass(frozen=True)
class CommitError:
    error: str


@dataclass(frozen=True)
class CommitDone:
    pass


@dataclass(frozen=True)
class CommitCancel:
    pass


@dataclass(frozen=True)
class PrCreateStart:
    ticket_id: str
    worktree_path: Path
    branch: str


@dataclass(frozen=True)
class SetPrCreatePhase:
    phase: PrCreatePhase


@dataclass(frozen=True)
class PrCreateError:
    error: str


@dataclass(frozen=True)
class PrCreateDone:
    url: str


@dataclass(frozen=True)
class PrCreateCancel:
    pass


Action = Union[
    SetData,
    Select,
    ScrollList,
    ScrollDetail,
    RefreshStart,
    RefreshDone,
    SetError,
    ClearError,
    SetOverlay,
    SetActionMessage,
    CreationStart,
    CreationLog,
    CreationDone,
    CreationError,
    DeleteStart,
    DeleteDone,
    SetupConfirmShow,
    SetupConfirmDone,
    CommitStart,
    SetCommitPhase,
    CommitMessage,
    CommitError,
    CommitDone,
    CommitCancel,
    PrCreateStart,
    SetPrCreatePhase,
    PrCreateError,
    PrCreateDone,
    PrCreateCancel,
]


def _close_overlay(
    state: DashboardState, overlay: Overlay | None = None, ticket_id: str | None = None
) -> DashboardState:
    """Switch overlay, dropping every overlay-local field."""
    return replace(
        state,
        overlay=overlay,
        overlay_ticket=ticket_id if overlay is not None else None,
        setup_mode=None,
        commit=CommitFlow(),
        pr_create=PrCreateFlow(),
    )


def reduce(state: DashboardState, action: Action) -> DashboardState:
    """Apply one action to the state and return the new state."""
    if isinstance(action, SetData):
        # Keep the cursor on the same ticket across refreshes
        new_index = 0
        previous = state.selected_issue
        if previous is not None:
            for i, di in enumerate(action.flat_issues):
                if di.identifier == previous.identifier:
                    new_index = i
                    break
        return replace(
            state,
            groups=action.groups,
            flat_issues=action.flat_issues,
            selected_index=new_index,
            loading=False,
            refreshing=False,
            error=None,
            detail_scroll_offset=0,
        )
    if isinstance(action, Select):
        return replace(state, selected_index=action.index, detail_scroll_offset=0)
    if isinstance(action, ScrollList):
        return replace(state, list_scroll_offset=action.offset)
    if isinstance(action, ScrollDetail):
        return replace(state, detail_scroll_offset=action.offset)
    if isinstance(action, RefreshStart):
        return replace(state, refreshing=True)
    if isinstance(action, RefreshDone):
        return replace(state, refreshing=False)
    if isinstance(action, SetError):
        return replace(state, error=action.error, loading=False, refreshing=False)
    if isinstance(action, ClearError):
        return replace(state, error=None)
    if isinstance(action, SetOverlay):
        return _close_overlay(state, action.overlay, action.ticket_id)
    if isinstance(action, SetActionMessage):
        return replace(state, action_message=action.message)

    if isinstance(action, CreationStart):
        return replace(
            state,
            creating_for_ticket=action.ticket_id,
            creation_logs="",
            creation_error=None,
        )
    if isinstance(action, CreationLog):
        return replace(state, creation_logs=state.creation_logs + action.logs)
    if isinstance(action, CreationDone):
        return replace(state, creating_for_ticket=None, creation_logs="", creation_error=None)
    if isinstance(action, CreationError):
        return replace(
            state,
            creation_error=action.error,
            creating_for_ticket=None,
            creation_logs="",
        )
    if isinstance(action, DeleteStart):
        return replace(state, deleting_for_ticket=action.ticket_id)
    if isinstance(action, DeleteDone):
        return replace(state, deleting_for_ticket=None)

    if isinstance(action, SetupConfirmShow):
        return replace(
            _close_overlay(state, Overlay.CONFIRM_SETUP, action.ticket_id), setup_mode=action.mode
        )
    if isinstance(action, SetupConfirmDone):
        return _close_overlay(state)

    if isinstance(action, CommitStart):
        return replace(
            _close_overlay(state, Overlay.COMMIT, action.ticket_id),
            commit=CommitFlow(
                phase=CommitPhase.CONFIRM_STAGE,
                ticket_id=action.ticket_id,
                worktree_path=action.worktree_path,
                branch=action.branch,
                git_status=action.git_status,
            ),
        )
    if isinstance(action, SetCommitPhase):
        return replace(state, commit=replace(state.commit, phase=action.phase))
    if isinstance(action, CommitMessage):
        return replace(state, commit=replace(state.commit, message=action.message))
    if isinstance(action, CommitError):
        return replace(
            state, commit=replace(state.commit, phase=CommitPhase.ERROR, error=action.error)
        )
    if isinstance(action, CommitDone):
        return replace(state, commit=replace(state.commit, phase=CommitPhase.DONE))
    if isinstance(action, CommitCancel):
        return _close_overlay(state)

    if isinstance(action, PrCreateStart):
        return replace(
            _close_overlay(state, Overlay.PR_CREATE, action.ticket_id),
            pr_create=PrCreateFlow(
                phase=PrCreatePhase.CHOOSE_MODE,
                ticket_id=action.ticket_id,
                worktree_path=action.worktree_path,
                branch=action.branch,
            ),
        )
    if isinstance(action, SetPrCreatePhase):
        return replace(state, pr_create=replace(state.pr_create, phase=action.phase))
    if isinstance(action, PrCreateError):
        return replace(
            state,
            pr_create=replace(state.pr_create, phase=PrCreatePhase.ERROR, error=action.error),
        )
    if isinstance(action, PrCreateDone):
        return replace(
            state, pr_create=replace(state.pr_create, phase=PrCreatePhase.DONE, url=action.url)
        )
    if isinstance(action, PrCreateCancel):
        return _close_overlay(state)

    return state


HISTORY_LIMIT = 200

Listener = Callable[[DashboardState], None]


class Store:
    """Owns the current DashboardState; everything else only dispatches."""

    def __init__(self, state: DashboardState | None = None):
        self._state = state or DashboardState()
        self._listeners: list[Listener] = []
        # Recent actions, for debugging and tests
        self.history: deque[Action] = deque(maxlen=HISTORY_LIMIT)

    @property
    def state(self) -> DashboardState:
        return self._state

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def dispatch(self, action: Action) -> None:
        self._state = reduce(self._state, action)
        self.history.append(action)
        for listener in self._listeners:
            listener(self._state)
