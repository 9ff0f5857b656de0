"""
HistoryStore - Abstract interface for history storage backends.

Design Pattern: Adapter Pattern
HistoryStore defines the target interface that all storage adapters
implement. Different backends (SQLite, Memory) adapt to this common
interface.

Design Principle: Dependency Inversion (SOLID)
The local host depends on this abstraction, not on concrete storage
implementations, so tests can swap in InMemoryHistoryStore.

A store keeps three things per orchestration instance:

- an InstanceRecord (name, status, input, output, custom status, error),
- the append-only history, in the history event wire format,
- an inbox of events waiting to be appended by the next replay pass,
  each visible from an optional time (used for timers).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pyreplay.models.history import History, HistoryEvent
from pyreplay.models.retry import RetryOptions
from pyreplay.models.status import InstanceStatus


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StorageError(Exception):
    """
    Storage operation failed.

    Custom exception with context, not generic Exception.
    """

    pass


class InstanceNotFoundError(StorageError):
    """No orchestration instance exists with the given id."""

    def __init__(self, instance_id: str):
        super().__init__(f"Orchestration instance {instance_id!r} not found")
        self.instance_id = instance_id


@dataclass
class InstanceRecord:
    """
    Runtime state of one orchestration instance.

    Design: Value object pattern - a snapshot the host reads, modifies
    and writes back with ``update_instance``.
    """

    instance_id: str
    """Unique identifier of the instance."""

    name: str
    """Registered orchestration name."""

    status: InstanceStatus = InstanceStatus.PENDING
    """Current runtime status."""

    input: Any = None
    """Orchestration input (replaced on continue-as-new)."""

    output: Any = None
    """Output once COMPLETED."""

    custom_status: Any = None
    """Last custom status published by the body."""

    error: str | None = None
    """Failure or termination reason once FAILED or TERMINATED."""

    parent_instance_id: str | None = None
    """Parent instance when started as a sub-orchestration."""

    parent_event_id: int | None = None
    """Event id of the parent's SubOrchestrationInstanceCreated event."""

    retry_options: RetryOptions | None = None
    """Restart policy when started by ``call_sub_orchestrator_with_retry``."""

    attempt: int = 1
    """Attempt number under ``retry_options`` (1-indexed)."""

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def __repr__(self) -> str:
        return (
            f"InstanceRecord(instance_id={self.instance_id!r}, name={self.name!r}, "
            f"status={self.status.value})"
        )


class HistoryStore(ABC):
    """
    Abstract storage interface for orchestration instances and their history.

    Clients program to this interface, not to concrete implementations.
    Every method is a coroutine; implementations guard shared state with
    an ``asyncio.Lock``.
    """

    # ========================================================================
    # Instance Operations
    # ========================================================================

    @abstractmethod
    async def create_instance(self, record: InstanceRecord) -> None:
        """
        Store a new instance record.

        Raises:
            StorageError: If an instance with the same id already exists
        """
        pass

    @abstractmethod
    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        """Get an instance record, or None if it does not exist."""
        pass

    @abstractmethod
    async def update_instance(self, record: InstanceRecord) -> None:
        """
        Overwrite an existing instance record and bump ``updated_at``.

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        pass

    @abstractmethod
    async def list_instances(self, status: InstanceStatus | None = None) -> list[InstanceRecord]:
        """
        List instance records, oldest first.

        Args:
            status: Only return instances in this status
        """
        pass

    # ========================================================================
    # History Operations
    # ========================================================================

    @abstractmethod
    async def append_history(self, instance_id: str, events: Sequence[HistoryEvent]) -> None:
        """
        Append events to an instance's history.

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        pass

    @abstractmethod
    async def get_history(self, instance_id: str) -> History:
        """Get an instance's full history (empty if none)."""
        pass

    @abstractmethod
    async def reset_history(self, instance_id: str) -> None:
        """Discard an instance's history (continue-as-new)."""
        pass

    # ========================================================================
    # Inbox Operations
    # ========================================================================

    @abstractmethod
    async def enqueue_event(
        self,
        instance_id: str,
        event: HistoryEvent,
        visible_at: datetime | None = None,
    ) -> None:
        """
        Queue an event for the instance's next replay pass.

        Args:
            instance_id: Target instance
            event: Event to append when the next pass starts
            visible_at: Earliest time the event may be dequeued (None: now)

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        pass

    @abstractmethod
    async def dequeue_events(self, instance_id: str, now: datetime) -> list[HistoryEvent]:
        """
        Remove and return queued events visible at ``now``, in enqueue order.
        """
        pass

    @abstractmethod
    async def next_event_time(self, instance_id: str) -> datetime | None:
        """Earliest ``visible_at`` among queued events, or None if the inbox is empty.

        Events queued without ``visible_at`` report their enqueue time.
        """
        pass

    # ========================================================================
    # Utility Operations
    # ========================================================================

    @abstractmethod
    async def purge_instance(self, instance_id: str) -> bool:
        """
        Delete an instance with its history and inbox.

        Returns:
            True if the instance existed
        """
        pass

    @abstractmethod
    async def reset(self) -> None:
        """
        Clear all data (for testing/demos).

        After reset(), storage is in initial state (empty but functional).

        Warning: Destructive operation - only use in testing!
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close storage connections and clean up resources.

        Use this in a context manager or try/finally block.
        """
        pass

    async def __aenter__(self) -> HistoryStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
