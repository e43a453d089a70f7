"""Task lifecycle: todo -> in_progress -> done -> todo."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from .models import Task, TaskStatus


@dataclass(frozen=True)
class StatusInfo:
    """Display metadata and successor of one status."""

    label: str
    next: TaskStatus
    next_label: str


STATUS_MAP: Final[dict[TaskStatus, StatusInfo]] = {
    TaskStatus.TODO: StatusInfo("To Do", TaskStatus.IN_PROGRESS, "Start Task"),
    TaskStatus.IN_PROGRESS: StatusInfo("In Progress", TaskStatus.DONE, "Complete Task"),
    TaskStatus.DONE: StatusInfo("Done", TaskStatus.TODO, "Reopen Task"),
}

COLUMN_ORDER: Final[tuple[TaskStatus, ...]] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)


def status_info(status: Any) -> StatusInfo:
    """Look up display metadata, falling back to todo for unknown values."""
    return STATUS_MAP[TaskStatus.normalize(status)]


@dataclass(frozen=True)
class Transition:
    """Result of advancing a task once."""

    status: TaskStatus
    assigned_to: str | None
    assignment_changed: bool = False

    def changes(self) -> dict[str, Any]:
        """Fields for a single field-level update."""
        fields: dict[str, Any] = {"status": self.status.value}
        if self.assignment_changed:
            fields["assignedTo"] = self.assigned_to
        return fields


def next_status(status: Any) -> TaskStatus:
    return status_info(status).next


def advance(task: Task, actor: str) -> Transition:
    """
    Compute the next status and assignee of a task.

    Leaving todo assigns the task to ``actor`` when it has no assignee yet;
    every other transition keeps the assignee verbatim. The function is pure
    and unaware of concurrent advances of the same task.

    Args:
        task: Task to advance
        actor: Session identifier performing the transition

    Returns:
        The Transition to write back to the store
    """
    current = TaskStatus.normalize(task.status)
    target = next_status(current)
    if current is TaskStatus.TODO and task.assigned_to is None:
        return Transition(status=target, assigned_to=actor, assignment_changed=True)
    return Transition(status=target, assigned_to=task.assigned_to)
