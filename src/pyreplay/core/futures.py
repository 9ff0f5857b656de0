"""
Action futures: the suspension primitive of a replay pass.

An orchestration body is a native coroutine, but it never runs on an
event loop. The driver steps it with ``coro.send(None)`` exactly once.
Every ``await`` on an action future polls the future once:

- If history already holds the result, the await returns it
  immediately and the body keeps running within the same step.
- If not, the future yields itself to the driver. That yield is the
  only suspension point in the system; the driver then closes the
  coroutine and ends the pass as pending.

Design: Poll-once generator
    ``__await__`` is a generator that either returns a value without
    yielding or yields exactly once. The code after the yield is never
    reached in a well-behaved pass; reaching it means the coroutine was
    resumed after suspending, which is an invariant break.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Generator
from typing import TYPE_CHECKING, Any

from pyreplay.models.actions import Action
from pyreplay.models.errors import InvariantError

if TYPE_CHECKING:
    from pyreplay.core.state import OrchestrationState

__all__ = ["_PENDING", "OrchestrationFuture", "ActionFuture"]

# Sentinel for "no result yet"
#
# A resolved future may legitimately hold None (a fired timer, an
# activity that returned nothing), so Optional cannot tell the two
# apart. Compare with identity: ``if value is _PENDING``.
_PENDING = object()


class OrchestrationFuture(ABC):
    """
    Base class for anything an orchestration body may await.

    Subclasses implement ``poll`` and ``event_index``. Awaiting polls
    once; the driver only accepts instances of this class as yielded
    values.
    """

    def __init__(self, state: OrchestrationState):
        self._state = state
        self.is_inner = False

    @property
    def state(self) -> OrchestrationState:
        return self._state

    @property
    @abstractmethod
    def event_index(self) -> int | None:
        """History index of the event that resolves this future, if any."""

    def notify_inner(self) -> None:
        """Hand cursor advancement to the wrapping combinator."""
        self.is_inner = True

    @abstractmethod
    def poll(self) -> Any:
        """Attempt completion; return the value or ``_PENDING``."""

    def done(self) -> bool:
        """Check whether polling would complete without suspending."""
        return self.event_index is not None

    def __await__(self) -> Generator[OrchestrationFuture, None, Any]:
        result = self.poll()
        if result is _PENDING:
            yield self
            error = InvariantError(f"{self!r} was resumed after suspending")
            raise self._state.record_fault(error)
        return result


class ActionFuture(OrchestrationFuture):
    """
    Future for one scheduled action or awaited external event.

    Invariant: a future without ``event_index`` has no result; a future
    with one carries the result decoded from the event at that index.
    The result can be taken only once.

    Example:
        ```python
        greeting = await context.call_activity("say_hello", "Tokyo")
        ```
    """

    def __init__(
        self,
        state: OrchestrationState,
        action: Action,
        event_index: int | None = None,
        result: Any = _PENDING,
    ):
        if (event_index is None) != (result is _PENDING):
            raise InvariantError(
                f"ActionFuture for {action.describe()} needs both an event index and a "
                f"result, or neither (event_index={event_index})"
            )
        super().__init__(state)
        self.action = action
        self._event_index = event_index
        self._result = result
        self._taken = False

    @property
    def event_index(self) -> int | None:
        return self._event_index

    def poll(self) -> Any:
        if self._taken:
            raise self._state.record_fault(InvariantError(f"{self!r} was already resolved"))

        if self._result is _PENDING:
            return _PENDING

        value = self._result
        self._result = _PENDING
        self._taken = True

        if not self.is_inner:
            self._state.update(self._event_index)
        return value

    def __repr__(self) -> str:
        if self._taken:
            status = "taken"
        elif self._event_index is None:
            status = "pending"
        else:
            status = f"ready@{self._event_index}"
        return f"ActionFuture({self.action.describe()}, {status})"
