"""Local host driving orchestration instances through replay passes.

LocalHost plays the role of the durable runtime for one process: it
persists history in a HistoryStore, runs one replay pass per call to
``run_pass``, and turns the actions a pass reports into new history:

- activities run right away (retried per RetryOptions for the
  ``*WithRetry`` variants) and queue ``TaskCompleted``/``TaskFailed``,
- timers queue ``TimerFired``, visible once the fire time has passed,
- sub-orchestrations start child instances whose terminal state queues
  ``SubOrchestrationInstanceCompleted``/``Failed`` on the parent,
- raised events queue ``EventRaised``.

Queued events are appended to history, behind an ``OrchestratorStarted``
marker, when the next pass starts. Every pass that ends pending closes
its window with an ``OrchestratorCompleted`` marker.

Features:
- Pluggable storage (InMemoryHistoryStore, SqliteHistoryStore)
- Injectable clock for deterministic timer tests
- Retry logic with exponential backoff
- Continue-as-new with fresh history
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

from uuid_extensions import uuid7

from pyreplay.config import ReplayConfig
from pyreplay.executor.outcome import Completed, ExecutionResult, Failed, Pending
from pyreplay.executor.registry import Registry
from pyreplay.models.actions import (
    Action,
    CallActivity,
    CallActivityWithRetry,
    CallSubOrchestrator,
    CallSubOrchestratorWithRetry,
    ContinueAsNew,
    CreateTimer,
)
from pyreplay.models.history import EventType, History, HistoryEvent
from pyreplay.models.retry import RetryOptions
from pyreplay.models.status import InstanceStatus
from pyreplay.storage.base import (
    HistoryStore,
    InstanceNotFoundError,
    InstanceRecord,
    StorageError,
)

logger = logging.getLogger(__name__)

_END_OF_TIME = datetime.max.replace(tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _next_event_id(history: History) -> int:
    """Next id for a scheduling event: one past the largest id in use."""
    return max((event.event_id for event in history if event.event_type.is_scheduling), default=-1) + 1


class LocalHost:
    """Run orchestration instances in-process on top of a HistoryStore.

    Example:
        ```python
        registry = Registry()
        registry.register(say_hello)
        registry.register(hello_cities)

        host = LocalHost(InMemoryHistoryStore(), registry)
        instance_id = await host.start_new("hello_cities", ["Tokyo", "London"])
        record = await host.run_until_idle(instance_id)
        print(record.status, record.output)
        ```
    """

    def __init__(
        self,
        store: HistoryStore,
        registry: Registry,
        config: ReplayConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Create a host.

        Args:
            store: Where instances, history and queued events live
            registry: Orchestrators and activities this host can run
            config: Host pacing (default: the registry's config)
            clock: Returns the current aware UTC time (default: wall clock)
        """
        self.store = store
        self.registry = registry
        self.config = config or registry.config
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    async def _require(self, instance_id: str) -> InstanceRecord:
        record = await self.store.get_instance(instance_id)
        if record is None:
            raise InstanceNotFoundError(instance_id)
        return record

    # =========================================================================
    # Client operations
    # =========================================================================

    async def start_new(
        self,
        name: str,
        input: Any = None,
        instance_id: str | None = None,
        parent_instance_id: str | None = None,
        *,
        parent_event_id: int | None = None,
        retry_options: RetryOptions | None = None,
        attempt: int = 1,
        delay: timedelta | None = None,
    ) -> str:
        """
        Create an orchestration instance and queue its ExecutionStarted event.

        Args:
            name: Registered orchestrator name
            input: JSON-serializable orchestration input
            instance_id: Instance id (default: a new uuid7)
            parent_instance_id: Parent when started as a sub-orchestration

        Returns:
            The instance id

        Raises:
            ValueError: If no orchestrator is registered under ``name``
            StorageError: If the instance id is already in use
        """
        if self.registry.get_orchestrator(name) is None:
            raise ValueError(f"Orchestrator {name!r} is not registered")
        try:
            json.dumps(input)
        except (TypeError, ValueError) as e:
            raise TypeError(f"Orchestration input must be JSON-serializable: {e}") from e

        instance_id = instance_id or str(uuid7())
        now = self.now()

        await self.store.create_instance(
            InstanceRecord(
                instance_id=instance_id,
                name=name,
                input=input,
                parent_instance_id=parent_instance_id,
                parent_event_id=parent_event_id,
                retry_options=retry_options,
                attempt=attempt,
                created_at=now,
                updated_at=now,
            )
        )
        await self._enqueue(
            instance_id,
            HistoryEvent(EventType.EXECUTION_STARTED, timestamp=now, name=name, input=input),
            visible_at=now + delay if delay else None,
        )

        logger.info(f"Started orchestration {name}: instance_id={instance_id}")
        return instance_id

    async def raise_event(self, instance_id: str, name: str, data: Any = None) -> bool:
        """
        Queue an external event for an instance.

        Returns:
            False if the instance is already terminal (the event is dropped)

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        record = await self._require(instance_id)
        if record.is_terminal:
            logger.warning(
                f"Dropped event {name!r} for {record.status.value} instance {instance_id}"
            )
            return False

        await self._enqueue(
            instance_id, HistoryEvent(EventType.EVENT_RAISED, timestamp=self.now(), name=name, input=data)
        )
        logger.debug(f"Raised event {name!r} on instance {instance_id}")
        return True

    async def terminate(self, instance_id: str, reason: str = "") -> bool:
        """
        Terminate a running instance.

        Returns:
            False if the instance was already terminal
        """
        record = await self._require(instance_id)
        if record.is_terminal:
            return False

        await self.store.append_history(
            instance_id,
            [HistoryEvent(EventType.EXECUTION_TERMINATED, timestamp=self.now(), reason=reason)],
        )
        record.status = InstanceStatus.TERMINATED
        record.error = reason
        await self.store.update_instance(record)

        logger.info(f"Terminated orchestration {record.name}: instance_id={instance_id}")
        await self._notify_parent(record)
        return True

    async def get_status(self, instance_id: str) -> InstanceRecord | None:
        return await self.store.get_instance(instance_id)

    async def get_history(self, instance_id: str) -> History:
        return await self.store.get_history(instance_id)

    async def purge_instance_history(self, instance_id: str) -> bool:
        """Delete an instance, its history and queued events."""
        purged = await self.store.purge_instance(instance_id)
        if purged:
            logger.info(f"Purged orchestration instance {instance_id}")
        return purged

    # =========================================================================
    # Passes
    # =========================================================================

    async def run_pass(self, instance_id: str) -> ExecutionResult | None:
        """
        Run one replay pass for an instance.

        Appends an OrchestratorStarted marker plus every queued event
        visible now, replays the body over the full history, and applies
        the outcome.

        Returns:
            The pass outcome, or None if the instance is terminal

        Raises:
            InstanceNotFoundError: If the instance does not exist
            ValueError: If the instance's orchestrator is no longer registered
        """
        record = await self._require(instance_id)
        if record.is_terminal:
            logger.debug(f"Skipping pass for {record.status.value} instance {instance_id}")
            return None

        orchestrator = self.registry.get_orchestrator(record.name)
        if orchestrator is None:
            raise ValueError(f"Orchestrator {record.name!r} is not registered")

        now = self.now()
        queued = await self.store.dequeue_events(instance_id, now)
        previous = await self.store.get_history(instance_id)

        new_events = [HistoryEvent(EventType.ORCHESTRATOR_STARTED, timestamp=now), *queued]
        await self.store.append_history(instance_id, new_events)
        history = History([replace(event, is_played=True) for event in previous] + new_events)

        logger.debug(
            f"Pass for {record.name} ({instance_id}): {len(previous)} replayed, "
            f"{len(queued)} new events"
        )
        outcome = orchestrator.run(
            history,
            input=record.input,
            instance_id=instance_id,
            parent_instance_id=record.parent_instance_id,
        )
        record.custom_status = outcome.custom_status

        match outcome:
            case Pending(actions=actions):
                await self._schedule(record, history, actions)
            case Completed(actions=actions) if outcome.continued_as_new:
                await self._continue_as_new(record, actions)
            case Completed(output=output):
                await self._complete(record, output)
            case Failed(error=error):
                await self._fail(record, error)

        return outcome

    async def run_until_idle(self, instance_id: str, max_passes: int | None = None) -> InstanceRecord:
        """
        Run passes for an instance and its sub-orchestrations until no work is due.

        With ``config.wait_for_timers`` set, sleeps until the next queued
        event (usually a timer) becomes visible instead of returning.

        Args:
            instance_id: Root instance
            max_passes: Upper bound on passes (default: ``config.max_passes``)

        Returns:
            The root instance's record after the last pass
        """
        limit = max_passes or self.config.max_passes
        passes = 0

        while True:
            now = self.now()
            runnable: list[str] = []
            upcoming: list[datetime] = []

            for record in await self._instance_tree(instance_id):
                due_at = await self.store.next_event_time(record.instance_id)
                if due_at is None:
                    continue
                if due_at <= now:
                    runnable.append(record.instance_id)
                else:
                    upcoming.append(due_at)

            if not runnable:
                if self.config.wait_for_timers and upcoming:
                    delay = (min(upcoming) - self.now()).total_seconds()
                    logger.debug(f"Waiting {delay:.3f}s for the next timer of {instance_id}")
                    await asyncio.sleep(max(delay, 0.0))
                    continue
                break

            if passes + len(runnable) > limit:
                logger.warning(f"Instance {instance_id} still has work after {passes} passes")
                break

            for runnable_id in runnable:
                await self.run_pass(runnable_id)
                passes += 1

        return await self._require(instance_id)

    async def _instance_tree(self, root_id: str) -> list[InstanceRecord]:
        """Non-terminal instances among the root and its descendants."""
        records = await self.store.list_instances()
        children: dict[str, list[InstanceRecord]] = {}
        by_id: dict[str, InstanceRecord] = {}
        for record in records:
            by_id[record.instance_id] = record
            if record.parent_instance_id is not None:
                children.setdefault(record.parent_instance_id, []).append(record)

        if root_id not in by_id:
            raise InstanceNotFoundError(root_id)

        tree: list[InstanceRecord] = []
        pending = [by_id[root_id]]
        while pending:
            record = pending.pop(0)
            if not record.is_terminal:
                tree.append(record)
            pending.extend(children.get(record.instance_id, []))
        return tree

    # =========================================================================
    # Outcome handling
    # =========================================================================

    async def _schedule(
        self, record: InstanceRecord, history: History, actions: tuple[Action, ...]
    ) -> None:
        now = self.now()
        event_id = _next_event_id(history)

        scheduled: list[HistoryEvent] = []
        activities: list[tuple[CallActivity | CallActivityWithRetry, int]] = []
        timers: list[tuple[int, datetime]] = []
        children: list[tuple[CallSubOrchestrator | CallSubOrchestratorWithRetry, int, str]] = []

        for action in actions:
            match action:
                case CallActivity() | CallActivityWithRetry():
                    scheduled.append(
                        HistoryEvent(
                            EventType.TASK_SCHEDULED,
                            event_id=event_id,
                            timestamp=now,
                            name=action.function_name,
                            input=action.input,
                        )
                    )
                    activities.append((action, event_id))
                case CallSubOrchestrator() | CallSubOrchestratorWithRetry():
                    child_id = action.instance_id or str(uuid7())
                    scheduled.append(
                        HistoryEvent(
                            EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
                            event_id=event_id,
                            timestamp=now,
                            name=action.function_name,
                            input=action.input,
                            instance_id=child_id,
                        )
                    )
                    children.append((action, event_id, child_id))
                case CreateTimer(fire_at=fire_at):
                    scheduled.append(
                        HistoryEvent(
                            EventType.TIMER_CREATED,
                            event_id=event_id,
                            timestamp=now,
                            fire_at=fire_at,
                        )
                    )
                    timers.append((event_id, fire_at))
                case ContinueAsNew():
                    logger.warning(
                        f"Ignoring continue-as-new for {record.instance_id}: the pass ended pending"
                    )
                    continue
                case _:
                    # Waits need no scheduling; the event arrives via raise_event
                    continue
            event_id += 1

        scheduled.append(HistoryEvent(EventType.ORCHESTRATOR_COMPLETED, timestamp=now))
        await self.store.append_history(record.instance_id, scheduled)

        record.status = InstanceStatus.RUNNING
        await self.store.update_instance(record)

        for timer_id, fire_at in timers:
            await self._enqueue(
                record.instance_id,
                HistoryEvent(
                    EventType.TIMER_FIRED,
                    timestamp=fire_at,
                    fire_at=fire_at,
                    timer_id=timer_id,
                ),
                visible_at=fire_at,
            )

        for action, scheduled_id, child_id in children:
            await self._start_child(record, action, scheduled_id, child_id)

        if activities:
            completions = await asyncio.gather(
                *(self._run_activity(action, scheduled_id) for action, scheduled_id in activities)
            )
            for completion in completions:
                await self._enqueue(record.instance_id, completion)

    async def _run_activity(
        self, action: CallActivity | CallActivityWithRetry, scheduled_id: int
    ) -> HistoryEvent:
        """Run an activity to its final outcome and build the completion event."""
        name = action.function_name
        func = self.registry.get_activity(name)
        if func is None:
            logger.error(f"Activity {name!r} is not registered")
            return HistoryEvent(
                EventType.TASK_FAILED,
                timestamp=self.now(),
                task_scheduled_id=scheduled_id,
                reason=f"Activity {name!r} is not registered",
            )

        retry_options = getattr(action, "retry_options", None)
        attempt = 1
        while True:
            try:
                result = func(action.input)
                if inspect.isawaitable(result):
                    result = await result
                json.dumps(result)
            except Exception as e:
                delay_ms = retry_options.delay_for_attempt(attempt) if retry_options else None
                if delay_ms is None:
                    logger.warning(f"Activity {name} failed after {attempt} attempt(s): {e}")
                    return HistoryEvent(
                        EventType.TASK_FAILED,
                        timestamp=self.now(),
                        task_scheduled_id=scheduled_id,
                        reason=str(e) or type(e).__name__,
                        details={"errorType": type(e).__name__, "attempts": attempt},
                    )

                logger.warning(
                    f"Activity {name} attempt {attempt} failed: {e}; retrying in {delay_ms}ms"
                )
                if self.config.wait_for_timers:
                    await asyncio.sleep(delay_ms / 1000)
                attempt += 1
                continue

            return HistoryEvent(
                EventType.TASK_COMPLETED,
                timestamp=self.now(),
                task_scheduled_id=scheduled_id,
                result=result,
            )

    async def _start_child(
        self,
        parent: InstanceRecord,
        action: CallSubOrchestrator | CallSubOrchestratorWithRetry,
        scheduled_id: int,
        child_id: str,
    ) -> None:
        try:
            await self.start_new(
                action.function_name,
                action.input,
                instance_id=child_id,
                parent_instance_id=parent.instance_id,
                parent_event_id=scheduled_id,
                retry_options=getattr(action, "retry_options", None),
            )
        except (ValueError, StorageError) as e:
            logger.error(f"Could not start sub-orchestration {action.function_name}: {e}")
            await self._enqueue(
                parent.instance_id,
                HistoryEvent(
                    EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
                    timestamp=self.now(),
                    task_scheduled_id=scheduled_id,
                    reason=str(e),
                ),
            )

    async def _complete(self, record: InstanceRecord, output: Any) -> None:
        now = self.now()
        await self.store.append_history(
            record.instance_id,
            [
                HistoryEvent(EventType.ORCHESTRATOR_COMPLETED, timestamp=now),
                HistoryEvent(EventType.EXECUTION_COMPLETED, timestamp=now, result=output),
            ],
        )
        record.status = InstanceStatus.COMPLETED
        record.output = output
        await self.store.update_instance(record)

        logger.info(f"Completed orchestration {record.name}: instance_id={record.instance_id}")
        await self._notify_parent(record)

    async def _fail(self, record: InstanceRecord, error: str) -> None:
        now = self.now()
        await self.store.append_history(
            record.instance_id,
            [
                HistoryEvent(EventType.ORCHESTRATOR_COMPLETED, timestamp=now),
                HistoryEvent(EventType.EXECUTION_FAILED, timestamp=now, reason=error),
            ],
        )
        record.status = InstanceStatus.FAILED
        record.error = error
        await self.store.update_instance(record)

        logger.error(
            f"Orchestration {record.name} failed: instance_id={record.instance_id}, error={error}"
        )
        await self._notify_parent(record)

    async def _continue_as_new(self, record: InstanceRecord, actions: tuple[Action, ...]) -> None:
        new_input = next(action.input for action in actions if isinstance(action, ContinueAsNew))

        await self.store.reset_history(record.instance_id)

        # Completions for the old generation reference events that no longer exist
        leftover = await self.store.dequeue_events(record.instance_id, _END_OF_TIME)
        for event in leftover:
            if event.event_type is EventType.EVENT_RAISED:
                await self._enqueue(record.instance_id, event)

        record.status = InstanceStatus.CONTINUED_AS_NEW
        record.input = new_input
        record.output = None
        await self.store.update_instance(record)

        await self._enqueue(
            record.instance_id,
            HistoryEvent(
                EventType.EXECUTION_STARTED,
                timestamp=self.now(),
                name=record.name,
                input=new_input,
            ),
        )
        logger.info(
            f"Orchestration {record.name} continued as new: instance_id={record.instance_id}"
        )

    async def _notify_parent(self, child: InstanceRecord) -> None:
        """Queue the child's terminal state on its parent, or restart it per its retry options."""
        if child.parent_instance_id is None or child.parent_event_id is None:
            return

        parent = await self.store.get_instance(child.parent_instance_id)
        if parent is None or parent.is_terminal:
            return

        if child.status is InstanceStatus.FAILED and child.retry_options is not None:
            delay_ms = child.retry_options.delay_for_attempt(child.attempt)
            if delay_ms is not None:
                await self._restart_child(parent, child, delay_ms)
                return

        if child.status is InstanceStatus.COMPLETED:
            event = HistoryEvent(
                EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED,
                timestamp=self.now(),
                task_scheduled_id=child.parent_event_id,
                result=child.output,
            )
        else:
            event = HistoryEvent(
                EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
                timestamp=self.now(),
                task_scheduled_id=child.parent_event_id,
                reason=child.error,
                details={"instanceId": child.instance_id, "status": child.status.value},
            )
        await self._enqueue(parent.instance_id, event)

    async def _restart_child(self, parent: InstanceRecord, child: InstanceRecord, delay_ms: int) -> None:
        history = await self.store.get_history(parent.instance_id)
        created = next(
            (
                event
                for event in history
                if event.event_type is EventType.SUB_ORCHESTRATION_INSTANCE_CREATED
                and event.event_id == child.parent_event_id
            ),
            None,
        )
        original_input = created.input if created is not None else child.input

        logger.warning(
            f"Sub-orchestration {child.name} attempt {child.attempt} failed: {child.error}; "
            f"retrying in {delay_ms}ms"
        )
        await self.start_new(
            child.name,
            original_input,
            parent_instance_id=parent.instance_id,
            parent_event_id=child.parent_event_id,
            retry_options=child.retry_options,
            attempt=child.attempt + 1,
            delay=timedelta(milliseconds=delay_ms) if self.config.wait_for_timers else None,
        )

    async def _enqueue(
        self, instance_id: str, event: HistoryEvent, visible_at: datetime | None = None
    ) -> None:
        # Immediate events are stamped with the host clock so an injected clock stays consistent
        await self.store.enqueue_event(instance_id, event, visible_at=visible_at or self.now())

    def __repr__(self) -> str:
        return f"LocalHost(store={self.store!r})"
