"""Tests for the add, advance and delete actions."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from studyflow.backend import BackendError, TaskStore
from studyflow.taskboard.actions import ADD_FAILED_ALERT, TaskActions, TaskDraft
from studyflow.taskboard.models import Task, TaskStatus

PATH = "artifacts/actions/public/data/study_tasks"


class FakeStore(TaskStore):
    """Records store calls; optionally fails or blocks until released."""

    def __init__(self, fail: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail = fail
        self.gate = gate

    async def _call(self, *call: Any) -> None:
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail

    def subscribe_ordered(self, collection_path: str, order_key: str):
        raise NotImplementedError

    async def insert(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        await self._call("insert", collection_path, dict(fields))
        return "doc-1"

    async def update_fields(self, collection_path, doc_id, partial_fields) -> None:
        await self._call("update", collection_path, doc_id, dict(partial_fields))

    async def remove(self, collection_path, doc_id) -> None:
        await self._call("remove", collection_path, doc_id)

    def server_timestamp(self) -> Any:
        return "SERVER_TS"


def _actions(store: FakeStore, alerts: list[str] | None = None, confirm=None) -> TaskActions:
    return TaskActions(
        store,
        PATH,
        "alice",
        alert=alerts.append if alerts is not None else None,
        confirm=confirm,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "   "])
async def test_add_rejects_empty_title_without_store_call(title):
    """Test that an empty title never reaches the store."""
    store = FakeStore()
    actions = _actions(store)
    actions.draft = TaskDraft(title=title, description="notes")

    assert await actions.add_task() is None
    assert store.calls == []
    assert actions.draft.description == "notes"


@pytest.mark.asyncio
async def test_add_inserts_todo_unassigned_and_clears_draft():
    """Test adding a task."""
    store = FakeStore()
    actions = _actions(store)
    actions.draft = TaskDraft(title="Ch.5 Quiz", description="pages 120-150")
    added: list[str] = []

    doc_id = await actions.add_task(on_added=added.append)

    assert doc_id == "doc-1"
    assert added == ["doc-1"]
    assert actions.draft == TaskDraft()
    assert store.calls == [
        (
            "insert",
            PATH,
            {
                "title": "Ch.5 Quiz",
                "description": "pages 120-150",
                "status": "todo",
                "createdAt": "SERVER_TS",
                "assignedTo": None,
                "createdBy": "alice",
            },
        )
    ]


@pytest.mark.asyncio
async def test_add_failure_alerts_and_keeps_draft(log_messages):
    """Test that a failed add alerts and keeps the draft."""
    alerts: list[str] = []
    actions = _actions(FakeStore(fail=BackendError("quota exceeded")), alerts)
    actions.draft = TaskDraft(title="Essay", description="1500 words")

    assert await actions.add_task() is None

    assert alerts == [ADD_FAILED_ALERT]
    assert actions.draft == TaskDraft(title="Essay", description="1500 words")
    assert not actions.submitting
    assert any("quota exceeded" in message for message in log_messages)


@pytest.mark.asyncio
async def test_add_rejects_while_submission_in_flight():
    """Test that only one submission runs at a time."""
    gate = asyncio.Event()
    store = FakeStore(gate=gate)
    actions = _actions(store)
    actions.draft = TaskDraft(title="Lab report")

    first = asyncio.create_task(actions.add_task())
    await asyncio.sleep(0)
    assert actions.submitting
    assert await actions.add_task() is None

    gate.set()
    assert await first == "doc-1"
    assert len(store.calls) == 1


@pytest.mark.asyncio
async def test_advance_from_todo_sets_assignee():
    """Test starting an unassigned task."""
    store = FakeStore()
    task = Task(id="t1", title="Quiz")

    assert await _actions(store).advance_status(task)

    assert store.calls == [("update", PATH, "t1", {"status": "in_progress", "assignedTo": "alice"})]


@pytest.mark.asyncio
async def test_advance_later_transitions_only_write_status():
    """Test that later transitions write the status alone."""
    store = FakeStore()
    actions = _actions(store)

    await actions.advance_status(Task(id="t1", title="Quiz", status=TaskStatus.IN_PROGRESS, assigned_to="bob"))
    await actions.advance_status(Task(id="t1", title="Quiz", status=TaskStatus.DONE, assigned_to="bob"))

    assert [call[3] for call in store.calls] == [{"status": "done"}, {"status": "todo"}]


@pytest.mark.asyncio
async def test_advance_failure_is_logged_only(log_messages):
    """Test that a failed advance is only logged."""
    alerts: list[str] = []
    actions = _actions(FakeStore(fail=BackendError("offline")), alerts)

    assert not await actions.advance_status(Task(id="t1", title="Quiz"))

    assert alerts == []
    assert any("Error updating task status t1: offline" in message for message in log_messages)


@pytest.mark.asyncio
async def test_delete_requires_confirmation():
    """Test the delete confirmation gate."""
    store = FakeStore()
    task = Task(id="t1", title="Quiz")

    assert not await _actions(store, confirm=lambda _task: False).delete_task(task)
    assert store.calls == []

    assert await _actions(store).delete_task(task, confirm=lambda _task: True)
    assert store.calls == [("remove", PATH, "t1")]


@pytest.mark.asyncio
async def test_delete_failure_is_logged_only(log_messages):
    """Test that a failed delete is only logged."""
    actions = _actions(FakeStore(fail=BackendError("denied")))

    assert not await actions.delete_task(Task(id="t9", title="Quiz"))
    assert any("Error deleting task t9: denied" in message for message in log_messages)
