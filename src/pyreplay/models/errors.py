"""Exception types for replay passes.

Two families live here:

- Engine faults (``ReplayError`` subclasses) are raised while a pass
  runs and turn the whole pass into a failed response. They are never
  meant to be caught by orchestration code.
- Task failures (``TaskFailedError`` subclasses) are never raised by the
  engine. A failed activity or sub-orchestration resolves its future to
  an instance of one of these, so the orchestration body can branch on
  it or re-raise it.
"""

from typing import Any

__all__ = [
    "ReplayError",
    "HistoryFormatError",
    "NonDeterminismError",
    "InvariantError",
    "TaskFailedError",
    "ActivityFailedError",
    "SubOrchestrationFailedError",
    "is_task_failure",
]


class ReplayError(Exception):
    """Base class for faults that abort a replay pass."""

    pass


class HistoryFormatError(ReplayError):
    """The history or invocation payload is structurally invalid.

    Unknown event kinds are not an error; a core event missing the
    fields its kind requires is.
    """

    pass


class NonDeterminismError(ReplayError):
    """The orchestration body diverged from its recorded history.

    Raised when the body issues actions in a different order, with a
    different name or input than history recorded, when it awaits
    something other than an action future (live I/O), or when it
    completes without issuing actions that history says it issued.
    """

    pass


class InvariantError(ReplayError):
    """An internal bookkeeping rule was broken.

    Examples: a future resolved twice, a cursor index outside the
    history, a coroutine resumed after it suspended.
    """

    pass


class TaskFailedError(Exception):
    """A scheduled task reported a failure in history.

    Attributes:
        name: Name of the activity or sub-orchestration
        reason: Failure reason recorded by the host
        details: Optional failure details recorded by the host

    Example:
        ```python
        result = await context.call_activity("charge_card", order)
        if is_task_failure(result):
            await context.call_activity("notify_support", result.reason)
        ```
    """

    def __init__(self, name: str, reason: str | None, details: Any = None):
        super().__init__(reason or f"{name} failed")
        self.name = name
        self.reason = reason
        self.details = details

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self.name, self.reason, self.details) == (other.name, other.reason, other.details)

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name, self.reason))

    def __str__(self) -> str:
        if self.reason:
            return f"{self.name}: {self.reason}"
        return f"{self.name} failed"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, reason={self.reason!r}, "
            f"details={self.details!r})"
        )


class ActivityFailedError(TaskFailedError):
    """An activity function failed (``TaskFailed`` history event)."""

    pass


class SubOrchestrationFailedError(TaskFailedError):
    """A sub-orchestration failed (``SubOrchestrationInstanceFailed`` event)."""

    pass


def is_task_failure(value: Any) -> bool:
    """Check whether an awaited task result is a failure value."""
    return isinstance(value, TaskFailedError)
