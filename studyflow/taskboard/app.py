"""Composition root for one client session of the task board."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from ..backend.base import BackendClient, ConfigurationError, Subscription, connect
from ..config import Settings
from .actions import Alert, Confirm, TaskActions, TaskDraft
from .models import Task
from .sync import LoadingState, SyncController
from .view import board_payload


class StudyFlowApp:
    """
    One client of the shared board.

    Signs in once at start (token when configured, anonymous otherwise),
    opens the realtime subscription whenever a session becomes available
    and exposes the mutation actions bound to that session.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BackendClient | None,
        alert: Alert | None = None,
        confirm: Confirm | None = None,
    ) -> None:
        self.settings = settings
        self.backend = backend
        self.controller = SyncController(
            backend.store if backend is not None else None,
            settings.collection_path,
        )
        self._alert = alert
        self._confirm = confirm
        self._actions: TaskActions | None = None
        self._auth_subscription: Subscription | None = None
        self._started = False
        self._stopped = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> StudyFlowApp:
        """Connect to the configured backend; a bad descriptor leaves the app unconfigured."""
        try:
            backend = connect(settings.backend_config)
        except ConfigurationError as exc:
            logger.error(f"Startup configuration error: {exc}")
            backend = None
        return cls(settings, backend, **kwargs)

    # ---- state ----

    @property
    def session_id(self) -> str | None:
        return self._actions.session_id if self._actions else None

    @property
    def state(self) -> LoadingState:
        return self.controller.state

    @property
    def message(self) -> str:
        return self.controller.message

    @property
    def tasks(self) -> list[Task]:
        return self.controller.tasks

    @property
    def actions(self) -> TaskActions | None:
        return self._actions

    def board(self) -> dict[str, Any]:
        return board_payload(
            self.controller.tasks,
            self.session_id,
            self.controller.state.value,
            self.controller.message,
        )

    # ---- lifecycle ----

    async def start(self) -> StudyFlowApp:
        if self._started:
            return self
        self._started = True

        if self.backend is None:
            self.controller.mark_unconfigured()
            return self

        if not self.backend.initialized:
            self.backend.init()
        self._auth_subscription = self.backend.identity.on_session_change(
            self._on_session_change
        )
        await self._sign_in()
        return self

    async def _sign_in(self) -> None:
        identity = self.backend.identity
        try:
            if self.settings.auth_token:
                await identity.authenticate_with_token(self.settings.auth_token)
            else:
                await identity.authenticate_anonymous()
        except Exception as exc:
            logger.error(f"Authentication error: {exc}")

    def _on_session_change(self, session_id: str | None) -> None:
        if self._stopped:
            return
        if not session_id:
            self._actions = None
            self.controller.await_auth()
            return
        if session_id == self.controller.session_id and self.controller.subscribed:
            return

        logger.info(f"Session ready: {session_id}")
        self._actions = TaskActions(
            self.backend.store,
            self.settings.collection_path,
            session_id,
            alert=self._alert,
            confirm=self._confirm,
        )
        self.controller.open(session_id)

    async def stop(self) -> None:
        """Release the auth listener, the subscription and the backend once."""
        if self._stopped:
            return
        self._stopped = True
        if self._auth_subscription is not None:
            self._auth_subscription.close()
        await self.controller.close()
        if self.backend is not None:
            self.backend.dispose()

    async def __aenter__(self) -> StudyFlowApp:
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ---- actions by id ----

    async def add_task(
        self,
        title: str,
        description: str = "",
        on_added: Callable[[str], None] | None = None,
    ) -> str | None:
        if self._actions is None:
            logger.warning("Cannot add a task before sign-in")
            return None
        if self._actions.submitting:
            logger.debug("Add task rejected: a submission is already in flight")
            return None
        self._actions.draft = TaskDraft(title=title, description=description)
        return await self._actions.add_task(on_added=on_added)

    async def advance(self, task_id: str) -> bool:
        task = self.controller.get_task(task_id)
        if self._actions is None or task is None:
            logger.warning(f"Cannot advance unknown task {task_id}")
            return False
        return await self._actions.advance_status(task)

    async def delete(self, task_id: str, confirm: Confirm | None = None) -> bool:
        task = self.controller.get_task(task_id)
        if self._actions is None or task is None:
            logger.warning(f"Cannot delete unknown task {task_id}")
            return False
        return await self._actions.delete_task(task, confirm=confirm)
