"""User actions that mutate the shared task collection."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from ..backend.base import TaskStore
from .lifecycle import advance
from .models import Task, new_task_fields

ADD_FAILED_ALERT = "Failed to add task. Check the log for details."

Alert = Callable[[str], None]
Confirm = Callable[[Task], bool]


@dataclass
class TaskDraft:
    """Input buffers of the add-task form."""

    title: str = ""
    description: str = ""


def _log_alert(message: str) -> None:
    logger.warning(f"Alert: {message}")


def _always_confirm(task: Task) -> bool:
    return True


class TaskActions:
    """
    Add, advance and delete operations for one signed-in session.

    Add failures are surfaced through ``alert`` and keep the draft for retry.
    Advance and delete failures are only logged; re-clicking retries them.
    """

    def __init__(
        self,
        store: TaskStore,
        collection_path: str,
        session_id: str,
        alert: Alert | None = None,
        confirm: Confirm | None = None,
    ) -> None:
        self.store = store
        self.collection_path = collection_path
        self.session_id = session_id
        self.draft = TaskDraft()
        self.submitting = False
        self._alert = alert or _log_alert
        self._confirm = confirm or _always_confirm

    async def add_task(self, on_added: Callable[[str], None] | None = None) -> str | None:
        """
        Submit the current draft as a new todo task.

        Args:
            on_added: Called with the new document id once the store accepted it

        Returns:
            The new document id, or None when rejected or failed
        """
        title = self.draft.title.strip()
        if not title:
            logger.debug("Add task rejected: empty title")
            return None
        if self.submitting:
            logger.debug("Add task rejected: a submission is already in flight")
            return None

        self.submitting = True
        try:
            doc_id = await self.store.insert(
                self.collection_path,
                new_task_fields(
                    title=title,
                    description=self.draft.description,
                    created_by=self.session_id,
                    created_at=self.store.server_timestamp(),
                ),
            )
        except Exception as exc:
            logger.error(f"Error adding task: {exc}")
            self._alert(ADD_FAILED_ALERT)
            return None
        finally:
            self.submitting = False

        self.draft = TaskDraft()
        logger.info(f"Task added: {doc_id} ({title!r})")
        if on_added is not None:
            on_added(doc_id)
        return doc_id

    async def advance_status(self, task: Task) -> bool:
        """Move a task to its next status with one field-level update."""
        transition = advance(task, self.session_id)
        try:
            await self.store.update_fields(self.collection_path, task.id, transition.changes())
        except Exception as exc:
            logger.error(f"Error updating task status {task.id}: {exc}")
            return False
        logger.info(f"Task {task.id}: {task.status.value} -> {transition.status.value}")
        return True

    async def delete_task(self, task: Task, confirm: Confirm | None = None) -> bool:
        """Delete a task once the user confirmed it."""
        if not (confirm or self._confirm)(task):
            logger.debug(f"Delete of task {task.id} not confirmed")
            return False
        try:
            await self.store.remove(self.collection_path, task.id)
        except Exception as exc:
            logger.error(f"Error deleting task {task.id}: {exc}")
            return False
        logger.info(f"Task deleted: {task.id}")
        return True
