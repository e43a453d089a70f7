"""Tests for board grouping and rendering."""

from rich.console import Console

from studyflow.taskboard.models import Task, TaskStatus
from studyflow.taskboard.view import (
    EMPTY_COLUMN_TEXT,
    EMPTY_DONE_TEXT,
    assigned_label,
    board_payload,
    group_by_status,
    render_board,
)

TASKS = [
    Task(id="1", title="Quiz", status=TaskStatus.TODO),
    Task(id="2", title="Essay", status=TaskStatus.IN_PROGRESS, assigned_to="bob-session-id"),
    Task(id="3", title="Lab", status=TaskStatus.TODO, assigned_to="alice"),
]


def test_group_by_status_keeps_order_and_all_columns():
    """Test grouping tasks into columns."""
    groups = group_by_status(TASKS)

    assert list(groups) == [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE]
    assert [t.id for t in groups[TaskStatus.TODO]] == ["1", "3"]
    assert groups[TaskStatus.DONE] == []


def test_assigned_label():
    """Test the assignee indicator."""
    assert assigned_label(TASKS[0], "alice") == "Unassigned"
    assert assigned_label(TASKS[2], "alice") == "You"
    assert assigned_label(TASKS[1], "alice") == "bob-sess"


def test_board_payload_columns():
    """Test the JSON board payload."""
    board = board_payload(TASKS, "alice", "ready", "Loaded 3 tasks.")

    assert board["session"] == "alice"
    assert board["total"] == 3
    titles = [column["title"] for column in board["columns"]]
    assert titles == ["To Do (2)", "In Progress (1)", "Done (0)"]
    assert board["columns"][0]["empty"] is None
    assert board["columns"][2]["empty"] == EMPTY_DONE_TEXT

    card = board["columns"][1]["tasks"][0]
    assert card["nextLabel"] == "Complete Task"
    assert card["next"] == "done"
    assert card["assigned"] == "bob-sess"


def test_render_board_prints_columns():
    """Test rendering the board with rich."""
    console = Console(record=True, width=160)

    render_board(TASKS, viewer="alice", console=console)

    output = console.export_text()
    assert "To Do (2)" in output
    assert "In Progress (1)" in output
    assert "Quiz" in output
    assert "Start Task" in output
    assert EMPTY_DONE_TEXT in output


def test_render_empty_board():
    """Test rendering an empty board."""
    console = Console(record=True, width=160)

    render_board([], console=console)

    assert EMPTY_COLUMN_TEXT in console.export_text()
