"""In-memory history store.

Design Pattern: Adapter Pattern
InMemoryHistoryStore adapts in-memory dictionaries to the HistoryStore
interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from pyreplay.models.history import History, HistoryEvent
from pyreplay.models.status import InstanceStatus
from pyreplay.storage.base import (
    HistoryStore,
    InstanceNotFoundError,
    InstanceRecord,
    StorageError,
)


@dataclass(frozen=True)
class _QueuedEvent:
    seq: int
    event: HistoryEvent
    enqueued_at: datetime
    visible_at: datetime | None

    @property
    def due_at(self) -> datetime:
        return self.visible_at or self.enqueued_at


class InMemoryHistoryStore(HistoryStore):
    """In-memory storage for testing.

    Can be substituted for SqliteHistoryStore without changing client code.
    Records are copied on the way in and out, so callers never share
    mutable state with the store.

    Usage:
        store = InMemoryHistoryStore()
        await store.create_instance(InstanceRecord("abc", "hello_cities"))
    """

    def __init__(self):
        # Storage: {instance_id: InstanceRecord}
        self._instances: dict[str, InstanceRecord] = {}

        # Storage: {instance_id: [HistoryEvent]}
        self._history: dict[str, list[HistoryEvent]] = {}

        # Inbox: {instance_id: [_QueuedEvent]}
        self._inbox: dict[str, list[_QueuedEvent]] = {}
        self._seq = itertools.count()

        # Lock for task-safety
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        """Return string representation of storage instance."""
        return f"InMemoryHistoryStore(instances={len(self._instances)})"

    def _require(self, instance_id: str) -> None:
        if instance_id not in self._instances:
            raise InstanceNotFoundError(instance_id)

    # ========================================================================
    # Instance Operations
    # ========================================================================

    async def create_instance(self, record: InstanceRecord) -> None:
        async with self._lock:
            if record.instance_id in self._instances:
                raise StorageError(f"Orchestration instance {record.instance_id!r} already exists")
            self._instances[record.instance_id] = replace(record)
            self._history[record.instance_id] = []
            self._inbox[record.instance_id] = []

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        async with self._lock:
            record = self._instances.get(instance_id)
            return replace(record) if record is not None else None

    async def update_instance(self, record: InstanceRecord) -> None:
        async with self._lock:
            self._require(record.instance_id)
            self._instances[record.instance_id] = replace(record, updated_at=datetime.now(UTC))

    async def list_instances(self, status: InstanceStatus | None = None) -> list[InstanceRecord]:
        async with self._lock:
            records = [
                replace(record)
                for record in self._instances.values()
                if status is None or record.status is status
            ]
        return sorted(records, key=lambda record: record.created_at)

    # ========================================================================
    # History Operations
    # ========================================================================

    async def append_history(self, instance_id: str, events: Sequence[HistoryEvent]) -> None:
        async with self._lock:
            self._require(instance_id)
            self._history[instance_id].extend(events)

    async def get_history(self, instance_id: str) -> History:
        async with self._lock:
            return History(self._history.get(instance_id, []))

    async def reset_history(self, instance_id: str) -> None:
        async with self._lock:
            self._require(instance_id)
            self._history[instance_id] = []

    # ========================================================================
    # Inbox Operations
    # ========================================================================

    async def enqueue_event(
        self,
        instance_id: str,
        event: HistoryEvent,
        visible_at: datetime | None = None,
    ) -> None:
        async with self._lock:
            self._require(instance_id)
            self._inbox[instance_id].append(
                _QueuedEvent(
                    seq=next(self._seq),
                    event=event,
                    enqueued_at=datetime.now(UTC),
                    visible_at=visible_at,
                )
            )

    async def dequeue_events(self, instance_id: str, now: datetime) -> list[HistoryEvent]:
        async with self._lock:
            queued = self._inbox.get(instance_id, [])
            due = [item for item in queued if item.visible_at is None or item.visible_at <= now]
            due_seqs = {item.seq for item in due}
            self._inbox[instance_id] = [item for item in queued if item.seq not in due_seqs]
            return [item.event for item in due]

    async def next_event_time(self, instance_id: str) -> datetime | None:
        async with self._lock:
            queued = self._inbox.get(instance_id, [])
            if not queued:
                return None
            return min(item.due_at for item in queued)

    # ========================================================================
    # Utility Operations
    # ========================================================================

    async def purge_instance(self, instance_id: str) -> bool:
        async with self._lock:
            existed = self._instances.pop(instance_id, None) is not None
            self._history.pop(instance_id, None)
            self._inbox.pop(instance_id, None)
            return existed

    async def reset(self) -> None:
        async with self._lock:
            self._instances.clear()
            self._history.clear()
            self._inbox.clear()

    async def close(self) -> None:
        """No resources to release."""
        pass
