"""Backend collaborators: identity provider and realtime task store."""

from .base import (
    AuthenticationError,
    BackendClient,
    BackendError,
    ConfigurationError,
    DocumentSnapshot,
    IdentityProvider,
    SnapshotStream,
    Subscription,
    SubscriptionError,
    TaskStore,
    connect,
)
from .memory import SERVER_TIMESTAMP, MemoryBackend, get_memory_backend

__all__ = [
    "AuthenticationError",
    "BackendClient",
    "BackendError",
    "ConfigurationError",
    "DocumentSnapshot",
    "IdentityProvider",
    "MemoryBackend",
    "SERVER_TIMESTAMP",
    "SnapshotStream",
    "Subscription",
    "SubscriptionError",
    "TaskStore",
    "connect",
    "get_memory_backend",
]
