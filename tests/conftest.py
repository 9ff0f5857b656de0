"""
Pytest configuration and fixtures for pyreplay tests.

Provides reusable fixtures for history stores, a history builder that
records events the way the host does, and a controllable clock.
"""

import shutil
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
from hypothesis import strategies as st

from pyreplay.models import EventType, History, HistoryEvent
from pyreplay.storage import InMemoryHistoryStore, SqliteHistoryStore

T0 = datetime(2019, 7, 18, 6, 22, 26, tzinfo=UTC)


@pytest.fixture
async def in_memory_store() -> AsyncGenerator[InMemoryHistoryStore, None]:
    """Async in-memory store fixture with automatic cleanup."""
    store = InMemoryHistoryStore()
    yield store
    await store.reset()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteHistoryStore, None]:
    """Async SQLite in-memory store fixture with automatic cleanup."""
    store = await SqliteHistoryStore.in_memory()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "test.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(params=["memory", "sqlite"])
async def store(request) -> AsyncGenerator[InMemoryHistoryStore | SqliteHistoryStore, None]:
    """Every store implementation, for contract tests."""
    if request.param == "memory":
        backend = InMemoryHistoryStore()
    else:
        backend = await SqliteHistoryStore.in_memory()
    yield backend
    await backend.close()


@pytest.fixture
def random_instance_id() -> str:
    """Generate random instance ID for testing."""
    return str(uuid4())


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# History builder
# =============================================================================


class HistoryBuilder:
    """
    Build histories the way the host records them.

    Scheduling events get increasing ids starting at 0. ``end_pass``
    closes the current execution window and opens the next one.

    Example:
        ```python
        builder = HistoryBuilder(input="Tokyo")
        task = builder.task_scheduled("say_hello", "Tokyo")
        builder.end_pass()
        builder.task_completed(task, "Hello Tokyo!")
        history = builder.build()
        ```
    """

    def __init__(
        self,
        input: Any = None,
        name: str = "orchestration",
        start: datetime = T0,
        markers: bool = True,
    ):
        self.now = start
        self.events: list[HistoryEvent] = []
        self._next_id = 0
        if markers:
            self.add(EventType.ORCHESTRATOR_STARTED)
        self.add(EventType.EXECUTION_STARTED, name=name, input=input)

    def add(self, event_type: EventType, **fields: Any) -> int:
        fields.setdefault("timestamp", self.now)
        self.events.append(HistoryEvent(event_type, **fields))
        return len(self.events) - 1

    def _scheduled(self, event_type: EventType, **fields: Any) -> int:
        event_id = self._next_id
        self._next_id += 1
        self.add(event_type, event_id=event_id, **fields)
        return event_id

    def task_scheduled(self, name: str, input: Any = None) -> int:
        return self._scheduled(EventType.TASK_SCHEDULED, name=name, input=input)

    def task_completed(self, task_id: int, result: Any = None) -> int:
        return self.add(EventType.TASK_COMPLETED, task_scheduled_id=task_id, result=result)

    def task_failed(self, task_id: int, reason: str, details: Any = None) -> int:
        return self.add(
            EventType.TASK_FAILED, task_scheduled_id=task_id, reason=reason, details=details
        )

    def sub_created(self, name: str, input: Any = None, instance_id: str = "child") -> int:
        return self._scheduled(
            EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
            name=name,
            input=input,
            instance_id=instance_id,
        )

    def sub_completed(self, task_id: int, result: Any = None) -> int:
        return self.add(
            EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED, task_scheduled_id=task_id, result=result
        )

    def sub_failed(self, task_id: int, reason: str) -> int:
        return self.add(
            EventType.SUB_ORCHESTRATION_INSTANCE_FAILED, task_scheduled_id=task_id, reason=reason
        )

    def timer_created(self, fire_at: datetime) -> int:
        return self._scheduled(EventType.TIMER_CREATED, fire_at=fire_at)

    def timer_fired(self, timer_id: int, fire_at: datetime) -> int:
        return self.add(EventType.TIMER_FIRED, timer_id=timer_id, fire_at=fire_at)

    def event_raised(self, name: str, data: Any = None) -> int:
        return self.add(EventType.EVENT_RAISED, name=name, input=data)

    def end_pass(self, seconds: float = 1.0) -> "HistoryBuilder":
        self.add(EventType.ORCHESTRATOR_COMPLETED)
        self.now += timedelta(seconds=seconds)
        self.add(EventType.ORCHESTRATOR_STARTED)
        return self

    def build(self) -> History:
        return History(self.events)


@pytest.fixture
def builder() -> HistoryBuilder:
    return HistoryBuilder()


# =============================================================================
# Hypothesis strategies
# =============================================================================

json_scalars = st.none() | st.booleans() | st.integers(-(2**53), 2**53) | st.text(max_size=20)

json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=10,
)

activity_names = st.text(
    min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll"))
)
