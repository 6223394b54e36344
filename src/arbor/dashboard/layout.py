"""Row math for the nested project -> status -> issue list, and the pane split.

Row 0 of the list is the column-label row. Every project group then takes
a header row, every status group inside it takes a header row, and every
issue takes one row. Flat indices count issues only, in the same order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from arbor.dashboard.state import DashboardIssue, ProjectGroup

# Screen geometry shared by the renderer and the mouse handler
HEADER_HEIGHT = 1
LIST_FOOTER_HEIGHT = 2
SEPARATOR_WIDTH = 3
MIN_PANE_WIDTH = 20
INITIAL_SPLIT = 0.42


class RowKind(Enum):
    COLUMNS = "columns"
    PROJECT = "project"
    STATUS = "status"
    ISSUE = "issue"


@dataclass(frozen=True)
class ListRow:
    kind: RowKind
    label: str = ""
    count: int = 0
    issue: DashboardIssue | None = None
    flat_index: int = -1


def build_list_rows(groups: Sequence[ProjectGroup]) -> list[ListRow]:
    """Every visual row of the issue list, in display order."""
    rows = [ListRow(RowKind.COLUMNS)]
    flat_index = 0
    for group in groups:
        rows.append(ListRow(RowKind.PROJECT, label=group.name, count=len(group.issues)))
        for status in group.status_groups:
            rows.append(ListRow(RowKind.STATUS, label=status.name, count=len(status.issues)))
            for issue in status.issues:
                rows.append(ListRow(RowKind.ISSUE, issue=issue, flat_index=flat_index))
                flat_index += 1
    return rows


def row_index_for_flat_index(groups: Sequence[ProjectGroup], flat_index: int) -> int:
    """Absolute list row of the issue at flat_index.

    An index past the end maps to the row after the last one.
    """
    row = 1
    seen = 0
    for group in groups:
        row += 1
        for status in group.status_groups:
            row += 1
            for _ in status.issues:
                if seen == flat_index:
                    return row
                row += 1
                seen += 1
    return row


def flat_index_for_list_row(groups: Sequence[ProjectGroup], list_row: int) -> int | None:
    """Flat index of the issue drawn on list_row, None for header rows."""
    if list_row <= 0:
        return None
    row = 1
    seen = 0
    for group in groups:
        if row == list_row:
            return None
        row += 1
        for status in group.status_groups:
            if row == list_row:
                return None
            row += 1
            for _ in status.issues:
                if row == list_row:
                    return seen
                row += 1
                seen += 1
    return None


def scroll_to_reveal(row: int, offset: int, visible: int) -> int:
    """New list scroll offset that keeps row inside a window of `visible` rows.

    Scrolls just far enough to bring the row to the window edge with one
    line of margin, and not at all if it is already visible.
    """
    if row < offset:
        return max(0, row - 1)
    if row >= offset + visible:
        return row - visible + 2
    return offset


def list_visible_rows(terminal_height: int) -> int:
    return max(1, terminal_height - HEADER_HEIGHT - LIST_FOOTER_HEIGHT)


class PaneSplit:
    """Width of the list pane; the detail pane gets what's left.

    Held outside the reducer: it changes on every drag event and has no
    bearing on the data.
    """

    def __init__(self, columns: int):
        self.columns = columns
        self.left_width = self.clamp(int(columns * INITIAL_SPLIT))
        self.dragging = False

    @property
    def right_width(self) -> int:
        return max(0, self.columns - self.left_width - SEPARATOR_WIDTH)

    def clamp(self, width: int) -> int:
        upper = self.columns - SEPARATOR_WIDTH - MIN_PANE_WIDTH
        return max(MIN_PANE_WIDTH, min(width, upper))

    def on_divider(self, col: int) -> bool:
        """Whether the 1-based column falls on the separator."""
        return self.left_width + 1 <= col <= self.left_width + SEPARATOR_WIDTH

    def drag_to(self, col: int) -> None:
        # Centre the divider on the pointer
        self.left_width = self.clamp(col - 1)

    def resize(self, columns: int) -> None:
        self.columns = columns
        self.left_width = self.clamp(self.left_width)
