"""Presentation helpers: column grouping, board payloads and terminal rendering."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .lifecycle import COLUMN_ORDER, STATUS_MAP, status_info
from .models import Task, TaskStatus

EMPTY_DONE_TEXT = "Great work! No completed tasks yet."
EMPTY_COLUMN_TEXT = "Nothing here yet! Add a task."

STATUS_STYLE: dict[TaskStatus, str] = {
    TaskStatus.TODO: "red",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.DONE: "green",
}


def group_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, list[Task]]:
    """Group tasks into the three columns, keeping snapshot order."""
    groups: dict[TaskStatus, list[Task]] = {status: [] for status in COLUMN_ORDER}
    for task in tasks:
        groups[TaskStatus.normalize(task.status)].append(task)
    return groups


def assigned_label(task: Task, viewer: str | None) -> str:
    if not task.assigned_to:
        return "Unassigned"
    if task.assigned_to == viewer:
        return "You"
    return task.assigned_to[:8]


def empty_text(status: TaskStatus) -> str:
    return EMPTY_DONE_TEXT if status is TaskStatus.DONE else EMPTY_COLUMN_TEXT


def column_title(status: TaskStatus, count: int) -> str:
    return f"{STATUS_MAP[status].label} ({count})"


def task_card(task: Task, viewer: str | None) -> dict[str, Any]:
    info = status_info(task.status)
    card = task.to_dict()
    card.update(
        {
            "label": info.label,
            "next": info.next.value,
            "nextLabel": info.next_label,
            "assigned": assigned_label(task, viewer),
        }
    )
    return card


def board_payload(
    tasks: Iterable[Task],
    viewer: str | None,
    state: str,
    message: str,
) -> dict[str, Any]:
    """
    Build the JSON board pushed to clients.

    Args:
        tasks: Current snapshot in store order
        viewer: Session id of the client the board is rendered for
        state: Loading state value
        message: Human-readable loading message

    Returns:
        Dictionary with the session, loading status and three columns
    """
    groups = group_by_status(tasks)
    return {
        "session": viewer,
        "state": state,
        "message": message,
        "total": sum(len(column) for column in groups.values()),
        "columns": [
            {
                "status": status.value,
                "title": column_title(status, len(groups[status])),
                "empty": empty_text(status) if not groups[status] else None,
                "tasks": [task_card(task, viewer) for task in groups[status]],
            }
            for status in COLUMN_ORDER
        ],
    }


def _card_text(task: Task, viewer: str | None) -> Text:
    info = status_info(task.status)
    text = Text()
    text.append(task.title, style="bold")
    if task.description:
        text.append(f"\n{task.description}", style="dim")
    text.append(f"\nAssigned: {assigned_label(task, viewer)}", style="italic")
    text.append(f"\n[{info.next_label}]", style=STATUS_STYLE[info.next])
    return text


def render_board(
    tasks: Iterable[Task],
    viewer: str | None = None,
    console: Console | None = None,
    title: str = "StudyFlow: Collaborative Task Board",
) -> Table:
    """Render the three columns as a rich table, printing it when a console is given."""
    groups = group_by_status(tasks)
    table = Table(title=title, expand=True, show_lines=True)
    for status in COLUMN_ORDER:
        table.add_column(
            column_title(status, len(groups[status])),
            header_style=f"bold {STATUS_STYLE[status]}",
            ratio=1,
        )

    rows = max((len(column) for column in groups.values()), default=0)
    if rows == 0:
        table.add_row(*(Text(empty_text(status), style="dim") for status in COLUMN_ORDER))
    for index in range(rows):
        cells: list[Text] = []
        for status in COLUMN_ORDER:
            column = groups[status]
            if index < len(column):
                cells.append(_card_text(column[index], viewer))
            elif index == 0:
                cells.append(Text(empty_text(status), style="dim"))
            else:
                cells.append(Text(""))
        table.add_row(*cells)

    if console is not None:
        console.print(table)
    return table
