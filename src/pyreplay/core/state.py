"""
Orchestration state for one replay pass.

OrchestrationState is the working set shared by reference between the
driver, the context, every action future and every combinator created
during a pass. It owns:

- the validated history and the cursors that walk it forward,
- the actions issued during this pass that history has not seen yet,
- the output, custom status and failure of the pass.

Design: Forward-only cursors
    Scheduling events are matched strictly in issuance order: the k-th
    action the body issues binds to the k-th scheduling event in
    history, never to a same-named entry further ahead. Raised events
    bind per name in the same way. Every cursor only moves forward, so
    a full replay visits each history event a bounded number of times.

Design: Execution windows
    Each host round-trip appears in history as an
    ``OrchestratorStarted`` .. ``OrchestratorCompleted`` pair. The
    window the body has reached decides ``current_time`` and
    ``is_replaying``; it moves forward as resolved futures advance the
    event cursor.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import xxhash

from pyreplay.config import ReplayConfig
from pyreplay.core.futures import _PENDING, ActionFuture
from pyreplay.models.actions import Action, ContinueAsNew, WaitForExternalEvent
from pyreplay.models.errors import (
    ActivityFailedError,
    HistoryFormatError,
    InvariantError,
    NonDeterminismError,
    SubOrchestrationFailedError,
)
from pyreplay.models.history import EventType, History, HistoryEvent

logger = logging.getLogger(__name__)

__all__ = ["OrchestrationState", "compute_input_hash"]


def compute_input_hash(value: Any) -> int:
    """
    Fingerprint a JSON value for input comparison.

    Canonical JSON (sorted keys, compact separators) hashed with xxhash,
    so inputs that differ only in key order hash the same.
    """
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return xxhash.xxh64(canonical.encode("utf-8")).intdigest() & 0x7FFFFFFFFFFFFFFF


class OrchestrationState:
    """
    Replay bookkeeping for one pass over one history.

    Created fresh on every invocation and discarded afterwards.

    Usage:
        ```python
        state = OrchestrationState(history)
        future = state.schedule_action(CallActivity("say_hello", "Tokyo"))
        ```

    Raises:
        HistoryFormatError: If the history is empty
    """

    def __init__(self, history: History, config: ReplayConfig | None = None):
        if not isinstance(history, History):
            history = History(history)
        if len(history) == 0:
            raise HistoryFormatError("History is empty; expected at least ExecutionStarted")

        self.history = history
        self.config = config or ReplayConfig.DEFAULT

        # Next history index to scan for a scheduling event
        self._scheduling_cursor = 0
        self._consumed: set[int] = set()
        # event name -> next history index to scan for EventRaised
        self._raised_cursors: dict[str, int] = {}
        # Furthest completion index consumed by an awaited future
        self._event_cursor = -1

        self._started_index = history.find_next(EventType.ORCHESTRATOR_STARTED)
        if self._started_index is not None:
            self._completed_index = history.find_next(
                EventType.ORCHESTRATOR_COMPLETED, self._started_index
            )
        else:
            self._completed_index = None

        self._new_actions: list[Action] = []
        self._output: Any = _PENDING
        self._custom_status: Any = None
        self._continued_as_new = False
        self._error: BaseException | None = None
        self._fault: Exception | None = None

    def record_fault(self, error: Exception) -> Exception:
        """
        Remember an engine fault before it is raised into the body.

        The driver fails the pass with the first recorded fault even if
        the orchestration body catches the exception.

        Returns:
            The same error, for ``raise state.record_fault(...)``
        """
        if self._fault is None:
            self._fault = error
        return error

    @property
    def fault(self) -> Exception | None:
        """First engine fault raised during the pass, if any."""
        return self._fault

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_action(self, action: Action) -> ActionFuture:
        """
        Bind an action to the next scheduling event in history.

        Args:
            action: A task, sub-orchestration or timer action

        Returns:
            Resolved future when history holds the completion; otherwise
            an unresolved one

        Raises:
            NonDeterminismError: If the next scheduling event records a
                different action
        """
        if action.scheduled_event_type is None:
            raise self.record_fault(
                InvariantError(f"{action.describe()} is not a schedulable action")
            )

        index = self.history.find_next_scheduled(self._scheduling_cursor)
        if index is None:
            logger.debug(f"New action {action.describe()}")
            self._new_actions.append(action)
            return ActionFuture(self, action)

        event = self.history[index]
        self._check_matches(action, event, index)

        self._consumed.add(index)
        self._scheduling_cursor = index + 1

        completion = self.history.find_completion(index)
        if completion is None:
            logger.debug(f"{action.describe()} bound to event {index}, not completed yet")
            return ActionFuture(self, action)

        logger.debug(f"{action.describe()} bound to event {index}, completed at {completion}")
        value = self._decode_completion(action, self.history[completion])
        return ActionFuture(self, action, event_index=completion, result=value)

    def wait_for_event(self, name: str) -> ActionFuture:
        """
        Bind a wait to the next ``EventRaised`` with this name.

        The k-th wait for a name binds to the k-th raised event with
        that name. Unresolved waits are reported as
        ``WaitForExternalEvent`` actions.
        """
        action = WaitForExternalEvent(name)
        index = self.history.find_raised_event(name, self._raised_cursors.get(name, 0))
        if index is None:
            self._new_actions.append(action)
            return ActionFuture(self, action)

        self._raised_cursors[name] = index + 1
        return ActionFuture(self, action, event_index=index, result=self.history[index].input)

    def _check_matches(self, action: Action, event: HistoryEvent, index: int) -> None:
        if not action.matches(event):
            recorded = event.event_type.name
            if event.name is not None:
                recorded += f"({event.name!r})"
            raise self.record_fault(
                NonDeterminismError(
                    f"Orchestration issued {action.describe()}, but history event {index} "
                    f"records {recorded}"
                )
            )

        if not self.config.check_inputs or event.input is None:
            return

        if compute_input_hash(action.target_input) != compute_input_hash(event.input):
            raise self.record_fault(
                NonDeterminismError(
                    f"Orchestration issued {action.describe()} with input "
                    f"{action.target_input!r}, but history event {index} "
                    f"recorded {event.input!r}"
                )
            )

    def _decode_completion(self, action: Action, event: HistoryEvent) -> Any:
        name = action.target_name or ""
        match event.event_type:
            case EventType.TASK_COMPLETED | EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED:
                return event.result
            case EventType.TASK_FAILED:
                return ActivityFailedError(name, event.reason, event.details)
            case EventType.SUB_ORCHESTRATION_INSTANCE_FAILED:
                return SubOrchestrationFailedError(name, event.reason, event.details)
            case EventType.TIMER_FIRED:
                return None
            case _:
                raise InvariantError(f"{event!r} does not complete {action.describe()}")

    # =========================================================================
    # Cursor
    # =========================================================================

    @property
    def event_cursor(self) -> int:
        """Furthest history index consumed by an awaited future (-1 before any)."""
        return self._event_cursor

    def update(self, event_index: int) -> None:
        """
        Advance the event cursor to ``event_index``.

        Indices at or behind the cursor are no-ops, so calling this
        twice with the same index has no extra effect. Moving forward
        also moves the execution window past every window that closed
        before ``event_index``.

        Raises:
            InvariantError: If the index lies outside the history
        """
        if not 0 <= event_index < len(self.history):
            raise self.record_fault(
                InvariantError(
                    f"Event index {event_index} is outside the history "
                    f"(length {len(self.history)})"
                )
            )

        if event_index <= self._event_cursor:
            return

        self._event_cursor = event_index
        self._advance_window(event_index)

    def _advance_window(self, event_index: int) -> None:
        if self._started_index is None or self._completed_index is None:
            return

        while self._completed_index < event_index:
            started = self.history.find_next(
                EventType.ORCHESTRATOR_STARTED, self._started_index + 1
            )
            if started is None:
                return

            self._started_index = started
            self._completed_index = self.history.find_next(
                EventType.ORCHESTRATOR_COMPLETED, started
            )
            logger.debug(
                f"Execution window advanced to {started}..{self._completed_index} "
                f"(cursor {event_index})"
            )
            if self._completed_index is None:
                return

    def is_replaying(self) -> bool:
        """Check whether the body is re-executing an already-completed window."""
        return self._completed_index is not None

    def current_time(self) -> datetime:
        """Deterministic time: when the host started the current window."""
        if self._started_index is not None:
            timestamp = self.history[self._started_index].timestamp
            if timestamp is not None:
                return timestamp

        for event in self.history:
            if event.timestamp is not None:
                return event.timestamp
        raise InvariantError("History has no timestamped event")

    # =========================================================================
    # Output
    # =========================================================================

    def set_output(self, value: Any) -> None:
        """Record the orchestration output; a second call overwrites the first."""
        self._output = value

    def set_custom_status(self, value: Any) -> None:
        self._custom_status = value

    def set_failure(self, error: BaseException) -> None:
        self._error = error

    def continue_as_new(self, input: Any = None) -> None:
        """Record a restart with ``input``; the pass completes with no output."""
        self._new_actions.append(ContinueAsNew(input))
        self._continued_as_new = True

    @property
    def output(self) -> Any:
        return None if self._output is _PENDING else self._output

    @property
    def custom_status(self) -> Any:
        return self._custom_status

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def is_done(self) -> bool:
        """Check whether the body returned and its output was recorded."""
        return self._output is not _PENDING

    @property
    def continued_as_new(self) -> bool:
        return self._continued_as_new

    @property
    def new_actions(self) -> list[Action]:
        """Actions issued this pass with no matching history entry."""
        return list(self._new_actions)

    def unconsumed_scheduled_events(self) -> list[int]:
        """History indices of scheduling events no action was matched against."""
        return [
            index
            for index, event in enumerate(self.history)
            if event.event_type.is_scheduling and index not in self._consumed
        ]

    def outcome(self):
        """Package the pass as an execution result (Completed, Pending or Failed)."""
        from pyreplay.executor.outcome import Completed, Failed, Pending

        if self._error is not None:
            return Failed.from_exception(self._error, custom_status=self._custom_status)
        if self.is_done:
            return Completed(
                output=None if self._continued_as_new else self.output,
                actions=tuple(self._new_actions),
                custom_status=self._custom_status,
            )
        return Pending(actions=tuple(self._new_actions), custom_status=self._custom_status)

    def result(self) -> str:
        """The JSON response envelope for this pass."""
        return self.outcome().to_json()

    def __repr__(self) -> str:
        return (
            f"OrchestrationState(events={len(self.history)}, cursor={self._event_cursor}, "
            f"new_actions={len(self._new_actions)})"
        )
