"""FastAPI server for the task board with WebSocket support."""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from loguru import logger

from .. import __version__
from ..config import Settings
from .app import StudyFlowApp

PING_INTERVAL = 30.0

INDEX_HTML = """<!doctype html>
<html><head><title>StudyFlow</title></head>
<body>
<h1>StudyFlow: Collaborative Task Board</h1>
<p>Board snapshot: <a href="/api/tasks">/api/tasks</a>.
Realtime updates and actions: WebSocket <code>/ws</code>.</p>
</body></html>
"""


class StudyFlowServer:
    """FastAPI server exposing the shared board to any number of clients."""

    def __init__(
        self,
        settings: Settings,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """
        Initialize the task board server.

        Args:
            settings: Application settings (backend descriptor, app id, token)
            host: Host to bind to, defaults to the settings value
            port: Port to bind to, defaults to the settings value
        """
        self.settings = settings
        self.host = host or settings.host
        self.port = port or settings.port
        self.observer: StudyFlowApp | None = None
        self.active_connections: list[WebSocket] = []
        self.app = FastAPI(title="StudyFlow", version=__version__, lifespan=self._lifespan)
        self._setup_routes()
        self._server: uvicorn.Server | None = None
        self._server_thread: threading.Thread | None = None

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        self.observer = StudyFlowApp.from_settings(self.settings)
        await self.observer.start()
        logger.info(f"Observer session ready: {self.observer.message}")
        try:
            yield
        finally:
            await self.observer.stop()
            self.observer = None

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get("/")
        async def root() -> HTMLResponse:
            """Serve the landing page."""
            return HTMLResponse(content=INDEX_HTML)

        @self.app.get("/api/health")
        async def health() -> dict[str, Any]:
            return {
                "status": "ok",
                "state": self.observer.state.value if self.observer else None,
                "connections": len(self.active_connections),
            }

        @self.app.get("/api/tasks")
        async def get_tasks() -> dict[str, Any]:
            """Get the board as seen by the server's observer session."""
            if self.observer is None:
                raise HTTPException(status_code=503, detail="Board is not running")
            return self.observer.board()

        @self.app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            """One client session per connection with realtime snapshots."""
            await websocket.accept()
            self.active_connections.append(websocket)
            try:
                await self._serve_client(websocket)
            finally:
                if websocket in self.active_connections:
                    self.active_connections.remove(websocket)

    async def _serve_client(self, websocket: WebSocket) -> None:
        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        token = websocket.query_params.get("token")
        settings = self.settings.with_overrides(auth_token=token)
        client = StudyFlowApp.from_settings(
            settings,
            alert=lambda message: outbox.put_nowait({"type": "alert", "message": message}),
        )
        client.controller.subscribe(
            lambda _controller: outbox.put_nowait({"type": "snapshot", **client.board()})
        )
        sender = asyncio.create_task(self._send_outbox(websocket, outbox))
        pending: set[asyncio.Task[None]] = set()

        try:
            await client.start()
            logger.info(f"Client connected: session={client.session_id}")
            while True:
                try:
                    raw = await asyncio.wait_for(websocket.receive_text(), timeout=PING_INTERVAL)
                except TimeoutError:
                    # Send ping to keep connection alive
                    outbox.put_nowait({"type": "ping"})
                    continue

                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    outbox.put_nowait({"type": "error", "message": "Malformed JSON"})
                    continue

                # Mutations run in the background; the receive loop never waits on the store.
                task = asyncio.create_task(self._handle_message(client, message, outbox))
                pending.add(task)
                task.add_done_callback(pending.discard)
        except WebSocketDisconnect:
            logger.info(f"Client disconnected: session={client.session_id}")
        finally:
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            await client.stop()

    @staticmethod
    async def _send_outbox(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
        while True:
            payload = await outbox.get()
            try:
                await websocket.send_json(payload)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug(f"Stopped sending to client: {exc}")
                return

    @staticmethod
    async def _handle_message(
        client: StudyFlowApp,
        message: Any,
        outbox: asyncio.Queue[dict[str, Any]],
    ) -> None:
        if not isinstance(message, dict):
            outbox.put_nowait({"type": "error", "message": "Expected a JSON object"})
            return

        action = message.get("action")
        task_id = str(message.get("id") or "")
        if action == "add":
            await client.add_task(
                str(message.get("title") or ""),
                str(message.get("description") or ""),
                on_added=lambda doc_id: outbox.put_nowait({"type": "added", "id": doc_id}),
            )
        elif action == "advance":
            await client.advance(task_id)
        elif action == "delete":
            confirmed = bool(message.get("confirmed"))
            await client.delete(task_id, confirm=lambda _task: confirmed)
        else:
            outbox.put_nowait({"type": "error", "message": f"Unknown action: {action!r}"})

    def run(self) -> None:
        """Run the server in the foreground."""
        logger.info(f"Starting StudyFlow at http://{self.host}:{self.port}")
        uvicorn.run(self.app, host=self.host, port=self.port, log_level="warning")

    def start_background(self) -> None:
        """Start the server in a background thread."""
        if self._server_thread and self._server_thread.is_alive():
            return

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        self._server = uvicorn.Server(config)
        self._server_thread = threading.Thread(target=self._server.run, daemon=True)
        self._server_thread.start()

    def stop(self) -> None:
        """Stop the server."""
        if self._server is not None:
            self._server.should_exit = True
        if self._server_thread is not None:
            self._server_thread.join(timeout=5.0)
            self._server_thread = None


def start_server(settings: Settings, host: str | None = None, port: int | None = None) -> StudyFlowServer:
    """
    Start the task board server in the background.

    Args:
        settings: Application settings
        host: Host to bind to
        port: Port to bind to

    Returns:
        The server instance
    """
    server = StudyFlowServer(settings, host=host, port=port)
    server.start_background()
    return server
