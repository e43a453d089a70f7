"""In-process hosted backend: document collections, realtime fan-out and sign-in."""

from __future__ import annotations

import asyncio
import itertools
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from .base import (
    AuthenticationError,
    BackendClient,
    BackendError,
    ConfigurationError,
    DocumentSnapshot,
    IdentityProvider,
    SessionListener,
    SnapshotStream,
    Subscription,
    SubscriptionError,
    TaskStore,
)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()
_END = object()


@dataclass
class _Record:
    seq: int
    fields: dict[str, Any]


class MemorySnapshotStream(SnapshotStream):
    """Snapshot stream fed by a MemoryBackend through an asyncio queue."""

    def __init__(
        self,
        backend: MemoryBackend,
        collection_path: str,
        order_key: str,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.collection_path = collection_path
        self.order_key = order_key
        self._backend = backend
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, item: Any) -> None:
        """Enqueue a snapshot (or an exception) from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def __anext__(self) -> list[DocumentSnapshot]:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END or self._closed:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._closed = True
            self._backend.detach(self)
            raise SubscriptionError(str(item) or type(item).__name__) from item
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._backend.detach(self)
        try:
            self.deliver(_END)
        except RuntimeError:
            # Loop already closed; nobody is left waiting on the queue.
            pass


class MemoryBackend:
    """
    Thread-safe document database shared by every client of one project.

    Mutations are committed under a lock and every open stream on the
    affected collection receives the full ordered result set afterwards.
    Field updates are last-writer-wins; no compare-and-swap is offered.
    """

    def __init__(self, project_id: str = "default", latency: float = 0.0) -> None:
        self.project_id = project_id
        self.latency = latency
        self._collections: dict[str, dict[str, _Record]] = {}
        self._streams: dict[str, list[MemorySnapshotStream]] = {}
        self._tokens: dict[str, str] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self.clock: Callable[[], datetime] = lambda: datetime.now(UTC)

    # ---- identity ----

    def register_token(self, token: str, uid: str) -> None:
        with self._lock:
            self._tokens[token] = uid

    def issue_session(self) -> str:
        return uuid.uuid4().hex

    def resolve_token(self, token: str) -> str:
        with self._lock:
            uid = self._tokens.get(token)
        if uid is None:
            raise AuthenticationError("Invalid or expired session token")
        return uid

    # ---- documents ----

    def _resolve(self, fields: Mapping[str, Any], now: datetime) -> dict[str, Any]:
        return {
            key: (now if value is SERVER_TIMESTAMP else value)
            for key, value in fields.items()
        }

    def _ordered(self, collection_path: str, order_key: str) -> list[DocumentSnapshot]:
        records = self._collections.get(collection_path, {})
        # Documents lacking the order key are excluded from ordered queries.
        matching = [
            (doc_id, record)
            for doc_id, record in records.items()
            if record.fields.get(order_key) is not None
        ]
        matching.sort(key=lambda item: (item[1].fields[order_key], item[1].seq))
        return [
            DocumentSnapshot(id=doc_id, data=dict(record.fields))
            for doc_id, record in matching
        ]

    def snapshot(self, collection_path: str, order_key: str) -> list[DocumentSnapshot]:
        with self._lock:
            return self._ordered(collection_path, order_key)

    def get(self, collection_path: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._collections.get(collection_path, {}).get(doc_id)
            return dict(record.fields) if record else None

    def insert(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        with self._lock:
            doc_id = uuid.uuid4().hex[:20]
            collection = self._collections.setdefault(collection_path, {})
            collection[doc_id] = _Record(
                seq=next(self._seq), fields=self._resolve(fields, self.clock())
            )
            self._publish(collection_path)
        logger.debug(f"Inserted document {collection_path}/{doc_id}")
        return doc_id

    def update(
        self, collection_path: str, doc_id: str, partial_fields: Mapping[str, Any]
    ) -> None:
        with self._lock:
            record = self._collections.get(collection_path, {}).get(doc_id)
            if record is None:
                raise BackendError(f"No document to update: {collection_path}/{doc_id}")
            record.fields.update(self._resolve(partial_fields, self.clock()))
            self._publish(collection_path)
        logger.debug(f"Updated document {collection_path}/{doc_id}: {sorted(partial_fields)}")

    def delete(self, collection_path: str, doc_id: str) -> None:
        with self._lock:
            removed = self._collections.get(collection_path, {}).pop(doc_id, None)
            if removed is not None:
                self._publish(collection_path)
        logger.debug(f"Deleted document {collection_path}/{doc_id} (existed={removed is not None})")

    # ---- realtime ----

    def open_stream(self, collection_path: str, order_key: str) -> MemorySnapshotStream:
        """Open a stream; the current result set is delivered first."""
        stream = MemorySnapshotStream(
            self, collection_path, order_key, asyncio.get_running_loop()
        )
        with self._lock:
            self._streams.setdefault(collection_path, []).append(stream)
            stream.deliver(self._ordered(collection_path, order_key))
        return stream

    def detach(self, stream: MemorySnapshotStream) -> None:
        with self._lock:
            streams = self._streams.get(stream.collection_path, [])
            if stream in streams:
                streams.remove(stream)

    def stream_count(self, collection_path: str) -> int:
        with self._lock:
            return len(self._streams.get(collection_path, []))

    def fail_subscriptions(self, collection_path: str, error: BaseException) -> None:
        """Simulate a feed failure on every open stream of a collection."""
        with self._lock:
            streams = list(self._streams.get(collection_path, []))
        logger.warning(f"Failing {len(streams)} subscription(s) on {collection_path}: {error}")
        for stream in streams:
            stream.deliver(error)

    def _publish(self, collection_path: str) -> None:
        # Called with the lock held so notifications keep commit order.
        for stream in list(self._streams.get(collection_path, [])):
            try:
                stream.deliver(self._ordered(collection_path, stream.order_key))
            except RuntimeError as exc:
                logger.warning(f"Dropping stream with a closed event loop: {exc}")
                self._streams[collection_path].remove(stream)


class MemoryTaskStore(TaskStore):
    """Client-side view of a MemoryBackend for one connection."""

    def __init__(self, backend: MemoryBackend) -> None:
        self.backend = backend
        self._streams: list[MemorySnapshotStream] = []

    async def _round_trip(self) -> None:
        if self.backend.latency > 0:
            await asyncio.sleep(self.backend.latency)
        else:
            await asyncio.sleep(0)

    def subscribe_ordered(self, collection_path: str, order_key: str) -> SnapshotStream:
        stream = self.backend.open_stream(collection_path, order_key)
        self._streams = [s for s in self._streams if not s.closed]
        self._streams.append(stream)
        return stream

    async def insert(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        await self._round_trip()
        return self.backend.insert(collection_path, fields)

    async def update_fields(
        self, collection_path: str, doc_id: str, partial_fields: Mapping[str, Any]
    ) -> None:
        await self._round_trip()
        self.backend.update(collection_path, doc_id, partial_fields)

    async def remove(self, collection_path: str, doc_id: str) -> None:
        await self._round_trip()
        self.backend.delete(collection_path, doc_id)

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    def close_all(self) -> None:
        for stream in self._streams:
            stream.close()
        self._streams.clear()


class MemoryIdentityProvider(IdentityProvider):
    """Per-client sign-in state against a MemoryBackend."""

    def __init__(self, backend: MemoryBackend) -> None:
        self.backend = backend
        self._session: str | None = None
        self._listeners: list[SessionListener] = []
        self._listener_lock = threading.Lock()

    @property
    def current_session(self) -> str | None:
        return self._session

    async def authenticate_anonymous(self) -> str:
        await asyncio.sleep(self.backend.latency)
        uid = self.backend.issue_session()
        self._set_session(uid)
        return uid

    async def authenticate_with_token(self, token: str) -> str:
        await asyncio.sleep(self.backend.latency)
        uid = self.backend.resolve_token(token)
        self._set_session(uid)
        return uid

    async def sign_out(self) -> None:
        self._set_session(None)

    def on_session_change(self, listener: SessionListener) -> Subscription:
        with self._listener_lock:
            self._listeners.append(listener)

        def release() -> None:
            with self._listener_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        listener(self._session)
        return Subscription(release)

    def clear_listeners(self) -> None:
        with self._listener_lock:
            self._listeners.clear()

    def _set_session(self, uid: str | None) -> None:
        self._session = uid
        with self._listener_lock:
            listeners = self._listeners.copy()

        for listener in listeners:
            try:
                listener(uid)
            except Exception:
                logger.exception("Session listener failed")


_backends: dict[str, MemoryBackend] = {}
_backends_lock = threading.Lock()


def get_memory_backend(project_id: str = "default") -> MemoryBackend:
    """Get the process-wide backend for a project, creating it on first use."""
    with _backends_lock:
        backend = _backends.get(project_id)
        if backend is None:
            backend = MemoryBackend(project_id)
            _backends[project_id] = backend
        return backend


def connect_memory(descriptor: Mapping[str, Any]) -> BackendClient:
    """
    Build a BackendClient bound to the in-process backend of a project.

    Raises:
        ConfigurationError: If ``latency`` is not a non-negative number or
            ``tokens`` is not a mapping of token strings to session ids
    """
    latency = descriptor.get("latency")
    if latency is not None and (
        isinstance(latency, bool) or not isinstance(latency, int | float) or latency < 0
    ):
        raise ConfigurationError(f"Backend latency must be a non-negative number, got {latency!r}")

    tokens = descriptor.get("tokens") or {}
    if not isinstance(tokens, Mapping) or not all(
        isinstance(token, str) and isinstance(uid, str) for token, uid in tokens.items()
    ):
        raise ConfigurationError("Backend tokens must map token strings to session ids")

    backend = get_memory_backend(str(descriptor.get("project_id", "default")))
    if latency is not None:
        backend.latency = float(latency)
    for token, uid in tokens.items():
        backend.register_token(token, uid)

    identity = MemoryIdentityProvider(backend)
    store = MemoryTaskStore(backend)

    def on_dispose() -> None:
        identity.clear_listeners()
        store.close_all()

    return BackendClient(identity, store, on_dispose=on_dispose)
