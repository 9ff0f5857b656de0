"""History stores for orchestration instances.

Provides storage implementations behind a common interface:
    - HistoryStore: Abstract interface
    - InMemoryHistoryStore: In-memory storage for testing
    - SqliteHistoryStore: SQLite-backed storage

Design: Adapter Pattern + Dependency Inversion (SOLID)
    All storage implementations adapt to the HistoryStore interface.
    The local host depends on the abstraction, not on concrete
    implementations.
"""

from pyreplay.storage.base import (
    HistoryStore,
    InstanceNotFoundError,
    InstanceRecord,
    StorageError,
)

# SqliteHistoryStore is imported lazily so aiosqlite is only loaded when used


def __getattr__(name: str):
    """Lazy import storage implementations."""
    if name == "InMemoryHistoryStore":
        from pyreplay.storage.memory import InMemoryHistoryStore

        return InMemoryHistoryStore
    elif name == "SqliteHistoryStore":
        from pyreplay.storage.sqlite import SqliteHistoryStore

        return SqliteHistoryStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "HistoryStore",
    "InstanceRecord",
    "StorageError",
    "InstanceNotFoundError",
    "InMemoryHistoryStore",
    "SqliteHistoryStore",
]
