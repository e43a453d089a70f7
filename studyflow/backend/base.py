"""Interfaces of the external collaborators: identity provider and task store."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


class BackendError(RuntimeError):
    """Base class for failures raised by a backend."""


class ConfigurationError(BackendError):
    """Raised when the backend connection descriptor is missing or invalid."""


class AuthenticationError(BackendError):
    """Raised when a sign-in attempt is rejected."""


class SubscriptionError(BackendError):
    """Raised by a snapshot stream when the realtime feed fails."""


@dataclass(frozen=True)
class DocumentSnapshot:
    """A single document as delivered by the store."""

    id: str
    data: Mapping[str, Any] = field(default_factory=dict)


class Subscription:
    """
    Handle for a listener registration.

    ``close()`` runs the release callback exactly once; later calls are no-ops.
    """

    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Callable[[], None] | None = release
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._release is None

    def close(self) -> None:
        with self._lock:
            release, self._release = self._release, None
        if release is not None:
            release()


class SnapshotStream(ABC):
    """
    Cancellable stream of full ordered snapshots.

    Iterating yields one ``list[DocumentSnapshot]`` per backend notification,
    in the order the backend emitted them. A feed failure raises
    ``SubscriptionError`` from the iterator. Iteration ends after ``close()``.
    """

    def __aiter__(self) -> AsyncIterator[list[DocumentSnapshot]]:
        return self

    @abstractmethod
    async def __anext__(self) -> list[DocumentSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        raise NotImplementedError

    @property
    @abstractmethod
    def closed(self) -> bool:
        raise NotImplementedError


SessionListener = Callable[[str | None], None]


class IdentityProvider(ABC):
    """Issues opaque session identifiers for a connecting client."""

    @property
    @abstractmethod
    def current_session(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def authenticate_anonymous(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def authenticate_with_token(self, token: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def on_session_change(self, listener: SessionListener) -> Subscription:
        """
        Register a listener called with the session id (or None on sign-out).

        The listener is invoked immediately with the current session.
        """
        raise NotImplementedError

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the current session; listeners are called with None."""
        raise NotImplementedError


class TaskStore(ABC):
    """Document collection with field-level updates and ordered subscriptions."""

    @abstractmethod
    def subscribe_ordered(self, collection_path: str, order_key: str) -> SnapshotStream:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, collection_path: str, fields: Mapping[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    async def update_fields(
        self, collection_path: str, doc_id: str, partial_fields: Mapping[str, Any]
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove(self, collection_path: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def server_timestamp(self) -> Any:
        """Placeholder replaced by the store's own clock at commit time."""
        raise NotImplementedError


class BackendClient:
    """
    Explicitly constructed handle on one backend connection.

    Bundles the identity provider and task store for a single client and
    owns their lifecycle through ``init()`` and ``dispose()``.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: TaskStore,
        on_dispose: Callable[[], None] | None = None,
    ) -> None:
        self.identity = identity
        self.store = store
        self._on_dispose = on_dispose
        self._initialized = False
        self._disposed = False

    @property
    def initialized(self) -> bool:
        return self._initialized and not self._disposed

    def init(self) -> BackendClient:
        if self._disposed:
            raise BackendError("Backend client has been disposed")
        self._initialized = True
        return self

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._on_dispose is not None:
            self._on_dispose()


def connect(descriptor: Mapping[str, Any] | None) -> BackendClient:
    """
    Build a backend client from a connection descriptor.

    Args:
        descriptor: Mapping with a ``provider`` key (defaults to ``memory``)
            and provider-specific options

    Returns:
        An uninitialized BackendClient

    Raises:
        ConfigurationError: If the descriptor is missing or names an unknown provider
    """
    if not descriptor:
        raise ConfigurationError("Backend configuration is missing")

    provider = str(descriptor.get("provider", "memory"))
    if provider == "memory":
        from .memory import connect_memory

        return connect_memory(descriptor)
    raise ConfigurationError(f"Unknown backend provider: {provider!r}")
