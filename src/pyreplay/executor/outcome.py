"""
Replay pass outcomes.

This module defines the ExecutionResult state machine for one replay
pass. Every pass ends in exactly one of three states, each with its
own response envelope:

    Completed  {"status": "success", "output", "actions", "customStatus"}
    Pending    {"status": "pending", "actions", "customStatus"}
    Failed     {"status": "failed", "error", "errorType", "customStatus"}

**Design Pattern**: State Machine using Union types

Suspension is explicit: a pending pass is a value the caller must
handle, not an exception or a timeout.

Example:
    ```python
    outcome = Orchestrator(hello_cities).run(history, input=None)

    match outcome:
        case Completed(output=output):
            print(f"Orchestration completed: {output}")
        case Pending(actions=actions):
            print(f"Schedule {len(actions)} new actions")
        case Failed(error=error):
            print(f"Pass failed: {error}")
    ```
"""

import json
from dataclasses import dataclass, field
from typing import Any

from pyreplay.models.actions import Action
from pyreplay.models.errors import ReplayError
from pyreplay.models.status import PassStatus

__all__ = [
    "Completed",
    "Pending",
    "Failed",
    "ExecutionResult",
    "is_completed",
    "is_pending",
    "is_failed",
]


@dataclass(frozen=True)
class Completed:
    """
    The orchestration body returned.

    Attributes:
        output: The body's return value (None after continue-as-new)
        actions: New actions issued during the pass, e.g. ``continueAsNew``
        custom_status: Last custom status set by the body

    Example:
        ```python
        outcome = Completed(output="Hello Tokyo!")
        ```
    """

    output: Any = None
    actions: tuple[Action, ...] = ()
    custom_status: Any = None

    status = PassStatus.SUCCESS

    @property
    def continued_as_new(self) -> bool:
        """Check if the body restarted itself instead of finishing."""
        return any(action.action_type == "continueAsNew" for action in self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "output": self.output,
            "actions": [action.to_dict() for action in self.actions],
            "customStatus": self.custom_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        if self.continued_as_new:
            return "Completed(continued_as_new)"
        return f"Completed(output={self.output!r})"


@dataclass(frozen=True)
class Pending:
    """
    The body awaited work whose completion is not in history yet.

    The host schedules ``actions`` and redelivers the instance once new
    history has been appended. An empty action list means everything
    the body waits on was scheduled in an earlier pass.

    Attributes:
        actions: New actions issued during the pass
        custom_status: Last custom status set by the body
    """

    actions: tuple[Action, ...] = ()
    custom_status: Any = None

    status = PassStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "actions": [action.to_dict() for action in self.actions],
            "customStatus": self.custom_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        names = ", ".join(action.describe() for action in self.actions)
        return f"Pending([{names}])"


@dataclass(frozen=True)
class Failed:
    """
    The body raised, or the pass hit a fatal engine condition.

    Attributes:
        error: Diagnostic message
        error_type: Name of the exception class
        custom_status: Last custom status set by the body
        fatal: True for engine faults (history mismatch, invariant
            breaks, malformed history); False for exceptions raised by
            the orchestration body itself
        exception: The exception itself, when the pass ran in-process
    """

    error: str
    error_type: str = "Exception"
    custom_status: Any = None
    fatal: bool = False
    exception: BaseException | None = field(default=None, compare=False, repr=False)

    status = PassStatus.FAILED

    @classmethod
    def from_exception(cls, exc: BaseException, custom_status: Any = None) -> "Failed":
        """Build a failed outcome from an exception raised during the pass."""
        return cls(
            error=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            custom_status=custom_status,
            fatal=isinstance(exc, ReplayError),
            exception=exc,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "error": self.error,
            "errorType": self.error_type,
            "customStatus": self.custom_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        return f"Failed({self.error_type}: {self.error})"


# =============================================================================
# EXECUTION RESULT UNION TYPE
# =============================================================================

# Pattern matching:
#     match outcome:
#         case Completed(output=output):
#             handle_output(output)
#         case Pending(actions=actions):
#             schedule(actions)
#         case Failed(error=error):
#             report(error)
#
ExecutionResult = Completed | Pending | Failed


def is_completed(outcome: ExecutionResult) -> bool:
    """
    Type guard to check if outcome is Completed.

    Example:
        ```python
        if is_completed(outcome):
            print(outcome.output)
        ```
    """
    return isinstance(outcome, Completed)


def is_pending(outcome: ExecutionResult) -> bool:
    """Type guard to check if outcome is Pending."""
    return isinstance(outcome, Pending)


def is_failed(outcome: ExecutionResult) -> bool:
    """Type guard to check if outcome is Failed."""
    return isinstance(outcome, Failed)
