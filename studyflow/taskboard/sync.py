"""Sync controller keeping a local snapshot of the shared task collection."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Final

from loguru import logger

from ..backend.base import DocumentSnapshot, SnapshotStream, TaskStore
from .models import Task, TaskStatus
from .view import group_by_status

ORDER_KEY: Final[str] = "createdAt"


class LoadingState(str, Enum):
    """Loading state of a controller."""

    UNINITIALIZED = "uninitialized"
    UNCONFIGURED = "unconfigured"
    AWAITING_AUTH = "awaiting_auth"
    SYNCING = "syncing"
    READY = "ready"
    DEGRADED = "degraded"


MSG_INITIALIZING: Final[str] = "Initializing backend..."
MSG_UNCONFIGURED: Final[str] = "Backend configuration is missing."
MSG_AWAITING_AUTH: Final[str] = "Awaiting authentication..."
MSG_FETCHING: Final[str] = "Fetching study tasks..."
MSG_FEED_FAILED: Final[str] = "Failed to connect to real-time feed."

Listener = Callable[["SyncController"], None]


class SyncController:
    """
    Owns at most one open snapshot stream and the latest full snapshot.

    Every snapshot replaces the local task list wholesale. On a feed failure
    the last good snapshot stays readable and the state becomes DEGRADED;
    resubscribing is left to the caller. Listeners are called after every
    state or snapshot change.
    """

    def __init__(self, store: TaskStore | None, collection_path: str) -> None:
        self.collection_path = collection_path
        self.state = LoadingState.UNINITIALIZED
        self.message = MSG_INITIALIZING
        self.session_id: str | None = None
        self._store = store
        self._tasks: tuple[Task, ...] = ()
        self._stream: SnapshotStream | None = None
        self._pump: asyncio.Task[None] | None = None
        self._listeners: list[Listener] = []
        self._closed = False

    # ---- queries ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscribed(self) -> bool:
        return self._stream is not None and not self._stream.closed

    def get_task(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def columns(self) -> dict[TaskStatus, list[Task]]:
        return group_by_status(self._tasks)

    # ---- listeners ----

    def subscribe(self, callback: Listener) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in self._listeners.copy():
            try:
                callback(self)
            except Exception:
                logger.exception("Sync listener failed")

    def _set_state(self, state: LoadingState, message: str) -> None:
        if state is not self.state:
            logger.debug(f"Sync state {self.state.value} -> {state.value}: {message}")
        self.state = state
        self.message = message
        self._notify()

    # ---- lifecycle ----

    def mark_unconfigured(self) -> None:
        self._set_state(LoadingState.UNCONFIGURED, MSG_UNCONFIGURED)

    def await_auth(self) -> None:
        """Drop any open stream and wait for a session."""
        if self._closed:
            return
        self._release()
        self.session_id = None
        self._set_state(LoadingState.AWAITING_AUTH, MSG_AWAITING_AUTH)

    def open(self, session_id: str) -> None:
        """
        Subscribe to the collection ordered by creation time.

        Any previously open stream is closed first. Must be called from a
        running event loop.
        """
        if self._closed:
            logger.warning("Ignoring open() on a closed sync controller")
            return
        if self._store is None:
            self.mark_unconfigured()
            return

        self._release()
        self.session_id = session_id
        self._set_state(LoadingState.SYNCING, MSG_FETCHING)
        try:
            stream = self._store.subscribe_ordered(self.collection_path, ORDER_KEY)
        except Exception as exc:
            self._degrade(exc)
            return
        self._stream = stream
        self._pump = asyncio.get_running_loop().create_task(self._run(stream))

    async def _run(self, stream: SnapshotStream) -> None:
        try:
            async for documents in stream:
                self._apply(documents)
        except Exception as exc:
            if stream is self._stream:
                self._degrade(exc)

    def _apply(self, documents: list[DocumentSnapshot]) -> None:
        self._tasks = tuple(Task.from_document(doc.id, doc.data) for doc in documents)
        self._set_state(LoadingState.READY, f"Loaded {len(self._tasks)} tasks.")

    def _degrade(self, exc: BaseException) -> None:
        logger.error(f"Realtime feed error on {self.collection_path}: {exc}")
        self._set_state(LoadingState.DEGRADED, MSG_FEED_FAILED)

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        pump, self._pump = self._pump, None
        if stream is not None:
            stream.close()
        if pump is not None and not pump.done():
            pump.cancel()

    async def close(self) -> None:
        """Release the subscription. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        pump = self._pump
        self._release()
        if pump is not None:
            await asyncio.gather(pump, return_exceptions=True)
        self._listeners.clear()
        logger.debug(f"Sync controller for {self.collection_path} closed")
