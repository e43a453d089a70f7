"""Tests for the HTTP and WebSocket server."""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from studyflow.config import Settings
from studyflow.taskboard.server import StudyFlowServer


def receive_until(websocket, predicate, limit: int = 50) -> dict:
    for _ in range(limit):
        message = websocket.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message never arrived")


def is_ready(message: dict) -> bool:
    return message.get("type") == "snapshot" and message["state"] == "ready"


@pytest.fixture
def client(settings: Settings):
    server = StudyFlowServer(settings)
    with TestClient(server.app) as test_client:
        yield test_client


def test_root_and_health(client: TestClient):
    """Test the root and health endpoints."""
    assert "StudyFlow" in client.get("/").text

    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["connections"] == 0


def test_get_tasks_returns_observer_board(client: TestClient):
    """Test the tasks endpoint."""
    board = client.get("/api/tasks").json()

    assert board["state"] in {"syncing", "ready"}
    assert board["total"] == 0
    assert [column["status"] for column in board["columns"]] == ["todo", "in_progress", "done"]


def test_unconfigured_server_reports_missing_backend():
    """Test the server without a backend descriptor."""
    with TestClient(StudyFlowServer(Settings()).app) as client:
        board = client.get("/api/tasks").json()

    assert board["state"] == "unconfigured"
    assert board["message"] == "Backend configuration is missing."


def test_websocket_sessions_share_realtime_updates(client: TestClient):
    """Test that WebSocket sessions see each other's changes."""
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        first_session = receive_until(first, is_ready)["session"]
        second_session = receive_until(second, is_ready)["session"]
        assert first_session != second_session

        first.send_json({"action": "add", "title": "Ch.5 Quiz", "description": "pages 120-150"})
        added = receive_until(first, lambda m: m.get("type") == "added")
        board = receive_until(second, lambda m: m.get("type") == "snapshot" and m["total"] == 1)
        card = board["columns"][0]["tasks"][0]
        assert card["id"] == added["id"]
        assert card["assigned"] == "Unassigned"

        second.send_json({"action": "advance", "id": card["id"]})
        board = receive_until(
            first,
            lambda m: m.get("type") == "snapshot" and len(m["columns"][1]["tasks"]) == 1,
        )
        moved = board["columns"][1]["tasks"][0]
        assert moved["assignedTo"] == second_session
        assert moved["assigned"] == second_session[:8]

        second.send_json({"action": "delete", "id": card["id"], "confirmed": True})
        receive_until(first, lambda m: m.get("type") == "snapshot" and m["total"] == 0)


def test_websocket_rejects_bad_messages(client: TestClient):
    """Test WebSocket error replies."""
    with client.websocket_connect("/ws") as websocket:
        receive_until(websocket, is_ready)

        websocket.send_text("{oops")
        assert receive_until(websocket, lambda m: m.get("type") == "error")["message"] == "Malformed JSON"

        websocket.send_json({"action": "archive"})
        error = receive_until(websocket, lambda m: m.get("type") == "error")
        assert "archive" in error["message"]


def test_websocket_token_sign_in(settings: Settings):
    """Test WebSocket sessions signed in with a token."""
    descriptor = {**settings.backend_config, "tokens": {"tok-z": "user-z"}}
    server = StudyFlowServer(replace(settings, backend_config=descriptor))

    with TestClient(server.app) as client:
        with client.websocket_connect("/ws?token=tok-z") as websocket:
            assert receive_until(websocket, is_ready)["session"] == "user-z"
