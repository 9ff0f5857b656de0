"""Action descriptors.

An action is a unit of new work an orchestration asks the host to
perform: call an activity, start a sub-orchestration, create a timer,
wait for an external event, or continue as new. Actions issued during a
pass that have no matching history entry are reported to the host,
which persists them as scheduling events.

Every action serializes to a camelCase JSON object tagged with
``actionType``:

    {"actionType": "callActivity", "functionName": "say_hello", "input": "Tokyo"}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

from pyreplay.models.history import EventType, HistoryEvent, format_timestamp
from pyreplay.models.retry import RetryOptions

__all__ = [
    "Action",
    "CallActivity",
    "CallActivityWithRetry",
    "CallSubOrchestrator",
    "CallSubOrchestratorWithRetry",
    "CreateTimer",
    "WaitForExternalEvent",
    "ContinueAsNew",
]


@dataclass(frozen=True)
class Action:
    """Base class for action descriptors."""

    action_type: ClassVar[str] = ""
    """Wire tag (``actionType``)."""

    scheduled_event_type: ClassVar[EventType | None] = None
    """History event the host writes when it schedules this action."""

    @property
    def target_name(self) -> str | None:
        """Name matched against the scheduling event in history."""
        return None

    @property
    def target_input(self) -> Any:
        """Input compared against the scheduling event in history."""
        return None

    def matches(self, event: HistoryEvent) -> bool:
        """Check whether a scheduling event records this action."""
        if event.event_type is not self.scheduled_event_type:
            return False
        return self.target_name is None or event.name == self.target_name

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the action's wire form."""
        raise NotImplementedError

    def describe(self) -> str:
        """Short human-readable description for diagnostics."""
        if self.target_name is not None:
            return f"{self.action_type}({self.target_name!r})"
        return self.action_type


@dataclass(frozen=True)
class CallActivity(Action):
    """Call an activity function."""

    action_type: ClassVar[str] = "callActivity"
    scheduled_event_type: ClassVar[EventType | None] = EventType.TASK_SCHEDULED

    function_name: str
    input: Any = None

    @property
    def target_name(self) -> str | None:
        return self.function_name

    @property
    def target_input(self) -> Any:
        return self.input

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "functionName": self.function_name,
            "input": self.input,
        }


@dataclass(frozen=True)
class CallActivityWithRetry(Action):
    """Call an activity function, retried by the host on failure."""

    action_type: ClassVar[str] = "callActivityWithRetry"
    scheduled_event_type: ClassVar[EventType | None] = EventType.TASK_SCHEDULED

    function_name: str
    retry_options: RetryOptions
    input: Any = None

    @property
    def target_name(self) -> str | None:
        return self.function_name

    @property
    def target_input(self) -> Any:
        return self.input

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "functionName": self.function_name,
            "retryOptions": self.retry_options.to_dict(),
            "input": self.input,
        }


@dataclass(frozen=True)
class CallSubOrchestrator(Action):
    """Start a sub-orchestration and wait for its output."""

    action_type: ClassVar[str] = "callSubOrchestrator"
    scheduled_event_type: ClassVar[EventType | None] = EventType.SUB_ORCHESTRATION_INSTANCE_CREATED

    function_name: str
    input: Any = None
    instance_id: str | None = None

    @property
    def target_name(self) -> str | None:
        return self.function_name

    @property
    def target_input(self) -> Any:
        return self.input

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "functionName": self.function_name,
            "instanceId": self.instance_id,
            "input": self.input,
        }


@dataclass(frozen=True)
class CallSubOrchestratorWithRetry(Action):
    """Start a sub-orchestration, restarted by the host on failure."""

    action_type: ClassVar[str] = "callSubOrchestratorWithRetry"
    scheduled_event_type: ClassVar[EventType | None] = EventType.SUB_ORCHESTRATION_INSTANCE_CREATED

    function_name: str
    retry_options: RetryOptions
    input: Any = None
    instance_id: str | None = None

    @property
    def target_name(self) -> str | None:
        return self.function_name

    @property
    def target_input(self) -> Any:
        return self.input

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "functionName": self.function_name,
            "retryOptions": self.retry_options.to_dict(),
            "instanceId": self.instance_id,
            "input": self.input,
        }


@dataclass(frozen=True)
class CreateTimer(Action):
    """Create a durable timer that fires at ``fire_at``."""

    action_type: ClassVar[str] = "createTimer"
    scheduled_event_type: ClassVar[EventType | None] = EventType.TIMER_CREATED

    fire_at: datetime
    is_cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "fireAt": format_timestamp(self.fire_at),
            "isCancelled": self.is_cancelled,
        }

    def describe(self) -> str:
        return f"{self.action_type}({format_timestamp(self.fire_at)})"


@dataclass(frozen=True)
class WaitForExternalEvent(Action):
    """Wait for an event raised on the instance from outside."""

    action_type: ClassVar[str] = "waitForExternalEvent"

    external_event_name: str

    @property
    def target_name(self) -> str | None:
        return self.external_event_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "externalEventName": self.external_event_name,
        }


@dataclass(frozen=True)
class ContinueAsNew(Action):
    """Restart the instance with fresh history and a new input."""

    action_type: ClassVar[str] = "continueAsNew"

    input: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"actionType": self.action_type, "input": self.input}
