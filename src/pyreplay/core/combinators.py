"""
Combinators over orchestration futures.

``JoinAll`` waits for every member and returns the results in the
order the members were given. ``SelectAll`` returns the member that
completed first in history order, its position, and the remaining
members for further composition.

Both take over cursor advancement from their members: members are
marked inner, and the combinator advances the cursor once, to the
latest (join) or earliest (select) completion it consumed.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pyreplay.core.futures import _PENDING, OrchestrationFuture
from pyreplay.models.errors import InvariantError

if TYPE_CHECKING:
    from pyreplay.core.state import OrchestrationState

__all__ = ["JoinAll", "SelectAll"]


class JoinAll(OrchestrationFuture):
    """
    Wait for all member futures.

    The join's event index is the largest member index, present only
    when every member has one. An empty join completes immediately
    with an empty list.

    Example:
        ```python
        tasks = [context.call_activity("say_hello", city) for city in cities]
        greetings = await context.join_all(tasks)
        ```
    """

    def __init__(self, state: OrchestrationState, futures: Iterable[OrchestrationFuture]):
        super().__init__(state)
        self._members = list(futures)
        for member in self._members:
            member.notify_inner()

        self._slots: list[Any] = [_PENDING] * len(self._members)
        self._taken = False

        indices = [member.event_index for member in self._members]
        if self._members and all(index is not None for index in indices):
            self._event_index: int | None = max(indices)
        else:
            self._event_index = None

    @property
    def members(self) -> list[OrchestrationFuture]:
        return list(self._members)

    @property
    def event_index(self) -> int | None:
        return self._event_index

    def done(self) -> bool:
        return not self._members or self._event_index is not None

    def poll(self) -> Any:
        if self._taken:
            raise self._state.record_fault(InvariantError(f"{self!r} was already resolved"))

        # Poll each incomplete member once, in construction order
        for position, member in enumerate(self._members):
            if self._slots[position] is _PENDING:
                value = member.poll()
                if value is not _PENDING:
                    self._slots[position] = value

        if any(slot is _PENDING for slot in self._slots):
            return _PENDING

        results = list(self._slots)
        self._taken = True

        if not self.is_inner and self._event_index is not None:
            self._state.update(self._event_index)
        return results

    def __repr__(self) -> str:
        resolved = sum(1 for slot in self._slots if slot is not _PENDING)
        return f"JoinAll({resolved}/{len(self._members)} resolved, event_index={self._event_index})"


class SelectAll(OrchestrationFuture):
    """
    Wait for the first member future to complete.

    "First" means earliest in history: the select's event index is the
    smallest index among members that have one, and only the member at
    that index is polled. Awaiting returns ``(value, position,
    remaining)``; ``remaining`` holds the other members in their
    original order and can be passed to another ``select_all``.

    Raises:
        ValueError: If constructed without members

    Example:
        ```python
        timeout = context.create_timer(deadline)
        approval = context.wait_for_event("approval")
        value, position, remaining = await context.select_all([approval, timeout])
        ```
    """

    def __init__(self, state: OrchestrationState, futures: Iterable[OrchestrationFuture]):
        super().__init__(state)
        self._members = list(futures)
        if not self._members:
            raise ValueError("select_all requires at least one future")

        for member in self._members:
            member.notify_inner()

        self._taken = False
        present = [member.event_index for member in self._members if member.event_index is not None]
        self._event_index: int | None = min(present) if present else None

    @property
    def members(self) -> list[OrchestrationFuture]:
        return list(self._members)

    @property
    def event_index(self) -> int | None:
        return self._event_index

    def poll(self) -> Any:
        if self._taken:
            raise self._state.record_fault(InvariantError(f"{self!r} was already resolved"))

        if self._event_index is None:
            return _PENDING

        for position, member in enumerate(self._members):
            if member.event_index != self._event_index:
                continue

            value = member.poll()
            if value is _PENDING:
                continue

            remaining = self._members[:position] + self._members[position + 1 :]
            # Remaining members advance the cursor themselves if awaited directly
            for other in remaining:
                other.is_inner = False
            self._taken = True

            if not self.is_inner:
                self._state.update(self._event_index)
            return value, position, remaining

        return _PENDING

    def __repr__(self) -> str:
        return f"SelectAll({len(self._members)} members, event_index={self._event_index})"
