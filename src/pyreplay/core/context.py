"""Orchestration context: the API handed to an orchestration body.

Provides OrchestrationContext, which turns calls such as
``call_activity`` into action futures bound to the pass's shared
OrchestrationState, and a task-local ContextVar so helpers deep in the
body can reach the running context without threading it through every
call.

Design: Task-Local State (contextvars)
    The driver sets EXECUTION_CONTEXT for the duration of one step of
    the body and resets it afterwards. Concurrent passes for different
    instances never see each other's context.
"""

import json
import logging
from collections.abc import Iterable
from contextvars import ContextVar
from datetime import datetime, timedelta
from typing import Any, Optional

from pyreplay.core.combinators import JoinAll, SelectAll
from pyreplay.core.futures import ActionFuture, OrchestrationFuture
from pyreplay.core.replay_logger import ReplaySafeLogger
from pyreplay.core.state import OrchestrationState
from pyreplay.models.actions import (
    CallActivity,
    CallActivityWithRetry,
    CallSubOrchestrator,
    CallSubOrchestratorWithRetry,
    CreateTimer,
)
from pyreplay.models.retry import RetryOptions

# =============================================================================
# Task-Local Context Variables
# =============================================================================

EXECUTION_CONTEXT: ContextVar[Optional["OrchestrationContext"]] = ContextVar(
    "execution_context", default=None
)
"""Task-local OrchestrationContext for the pass being driven.

Usage:
    ```python
    token = EXECUTION_CONTEXT.set(context)
    try:
        coro.send(None)
    finally:
        EXECUTION_CONTEXT.reset(token)
    ```
"""

_orchestration_logger = logging.getLogger("pyreplay.orchestration")


def _ensure_json(value: Any, what: str) -> None:
    """Raise TypeError unless ``value`` is JSON-serializable."""
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise TypeError(f"{what} must be JSON-serializable: {e}") from e


# =============================================================================
# OrchestrationContext
# =============================================================================


class OrchestrationContext:
    """Deterministic API for one orchestration instance during one pass.

    Every method that starts work returns an action future. Awaiting it
    yields the recorded result when history has one, or suspends the
    pass otherwise. Failed activities and sub-orchestrations resolve to
    ``ActivityFailedError`` / ``SubOrchestrationFailedError`` values
    rather than raising.

    Usage:
        ```python
        @orchestrator
        async def hello_cities(context: OrchestrationContext):
            tokyo = await context.call_activity("say_hello", "Tokyo")
            london = await context.call_activity("say_hello", "London")
            return [tokyo, london]
        ```
    """

    def __init__(
        self,
        state: OrchestrationState,
        instance_id: str,
        input: Any = None,
        parent_instance_id: str | None = None,
    ):
        """Initialize a context over a pass's shared state.

        Args:
            state: Replay state shared with every future of this pass
            instance_id: Orchestration instance identifier
            input: Orchestration input
            parent_instance_id: Parent instance when run as a sub-orchestration
        """
        self._state = state
        self.instance_id = instance_id
        self.parent_instance_id = parent_instance_id
        self.input = input
        self.logger = ReplaySafeLogger(
            _orchestration_logger,
            instance_id,
            state.is_replaying,
            enabled=state.config.replay_safe_logging,
        )

    @property
    def state(self) -> OrchestrationState:
        return self._state

    def is_replaying(self) -> bool:
        """Check whether the body is re-executing steps already in history."""
        return self._state.is_replaying()

    def current_time(self) -> datetime:
        """Replay-safe current time (use instead of ``datetime.now``)."""
        return self._state.current_time()

    # =========================================================================
    # Activities and sub-orchestrations
    # =========================================================================

    def call_activity(self, name: str, input: Any = None) -> ActionFuture:
        """Schedule an activity function.

        Args:
            name: Registered activity name
            input: JSON-serializable input

        Returns:
            Future resolving to the activity's result or an ActivityFailedError
        """
        _ensure_json(input, "Activity input")
        return self._state.schedule_action(CallActivity(name, input))

    def call_activity_with_retry(
        self, name: str, retry_options: RetryOptions, input: Any = None
    ) -> ActionFuture:
        """Schedule an activity function that the host retries on failure.

        History shows one scheduling event and one final outcome; the
        body never observes the intermediate attempts.
        """
        _ensure_json(input, "Activity input")
        return self._state.schedule_action(CallActivityWithRetry(name, retry_options, input))

    def call_sub_orchestrator(
        self, name: str, input: Any = None, instance_id: str | None = None
    ) -> ActionFuture:
        """Start a sub-orchestration.

        Returns:
            Future resolving to the child's output or a SubOrchestrationFailedError
        """
        _ensure_json(input, "Sub-orchestration input")
        return self._state.schedule_action(CallSubOrchestrator(name, input, instance_id))

    def call_sub_orchestrator_with_retry(
        self,
        name: str,
        retry_options: RetryOptions,
        input: Any = None,
        instance_id: str | None = None,
    ) -> ActionFuture:
        """Start a sub-orchestration that the host restarts on failure."""
        _ensure_json(input, "Sub-orchestration input")
        return self._state.schedule_action(
            CallSubOrchestratorWithRetry(name, retry_options, input, instance_id)
        )

    # =========================================================================
    # Timers and events
    # =========================================================================

    def create_timer(self, fire_at: datetime | timedelta) -> ActionFuture:
        """Create a durable timer.

        Args:
            fire_at: Timezone-aware datetime, or a delay relative to
                ``current_time()``

        Returns:
            Future resolving to None once the timer has fired

        Raises:
            TypeError: If fire_at is neither a datetime nor a timedelta
            ValueError: If fire_at is a naive datetime
        """
        if isinstance(fire_at, timedelta):
            fire_at = self.current_time() + fire_at
        elif not isinstance(fire_at, datetime):
            raise TypeError(f"fire_at must be a datetime, got {type(fire_at).__name__}")
        elif fire_at.tzinfo is None or fire_at.utcoffset() is None:
            raise ValueError("fire_at must be timezone-aware")
        return self._state.schedule_action(CreateTimer(fire_at))

    def wait_for_event(self, name: str) -> ActionFuture:
        """Wait for an external event raised on this instance.

        Returns:
            Future resolving to the event's data
        """
        if not name:
            raise ValueError("Event name must not be empty")
        return self._state.wait_for_event(name)

    # =========================================================================
    # Combinators
    # =========================================================================

    def join_all(self, futures: Iterable[OrchestrationFuture]) -> JoinAll:
        """Wait for every future; results keep the order given."""
        return JoinAll(self._state, futures)

    def select_all(self, futures: Iterable[OrchestrationFuture]) -> SelectAll:
        """Wait for the first future to complete in history order.

        Returns:
            Future resolving to ``(value, position, remaining)``
        """
        return SelectAll(self._state, futures)

    # =========================================================================
    # Output
    # =========================================================================

    def set_custom_status(self, value: Any) -> None:
        """Publish a JSON-serializable status; the last write wins."""
        _ensure_json(value, "Custom status")
        self._state.set_custom_status(value)

    def continue_as_new(self, input: Any = None) -> None:
        """Restart this instance with fresh history once the body returns.

        The body's return value is discarded.
        """
        _ensure_json(input, "Continue-as-new input")
        self._state.continue_as_new(input)

    def __repr__(self) -> str:
        return f"OrchestrationContext(instance_id={self.instance_id!r}, state={self._state!r})"


# =============================================================================
# Helper Functions
# =============================================================================


def get_current_context() -> OrchestrationContext | None:
    """Get the OrchestrationContext of the pass being driven.

    Returns:
        Current context if called from inside an orchestration body, None otherwise
    """
    return EXECUTION_CONTEXT.get()
