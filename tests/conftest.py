"""Shared fixtures: isolated in-memory projects, settings and log capture."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable

import pytest
from loguru import logger

from studyflow.backend import MemoryBackend, get_memory_backend
from studyflow.config import Settings


@pytest.fixture
def project_id() -> str:
    return f"test-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def backend(project_id: str) -> MemoryBackend:
    return get_memory_backend(project_id)


@pytest.fixture
def settings(project_id: str, backend: MemoryBackend) -> Settings:
    return Settings(
        app_id="test-app",
        backend_config={"provider": "memory", "project_id": project_id},
    )


@pytest.fixture
def log_messages():
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def eventually():
    async def wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition was not met in time")
            await asyncio.sleep(0.005)

    return wait
