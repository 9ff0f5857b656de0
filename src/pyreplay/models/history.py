"""History event model.

The host records every fact about an orchestration instance as an
append-only list of history events. This module parses that list from
its wire form (PascalCase JSON objects with integer ``EventType`` tags)
into immutable ``HistoryEvent`` records, and wraps it in ``History``,
which provides the forward-only lookups replay needs.

Design: Forward-Compatible Tagged Union
    Event kinds are an ``IntEnum``. Tags the worker does not know map
    to ``EventType.UNKNOWN`` and are skipped by every lookup, so the
    host can extend its vocabulary without breaking older workers.

Example:
    ```python
    history = History.from_json([
        {"EventType": 0, "EventId": -1, "Timestamp": "2019-07-18T06:22:26Z"},
        {"EventType": 4, "EventId": 0, "Name": "say_hello",
         "Timestamp": "2019-07-18T06:22:27Z"},
    ])
    index = history.find_next_scheduled(0)  # 1
    ```
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any, overload

from pyreplay.models.errors import HistoryFormatError

logger = logging.getLogger(__name__)

__all__ = [
    "EventType",
    "HistoryEvent",
    "History",
    "parse_timestamp",
    "format_timestamp",
]


class EventType(IntEnum):
    """Kind of a history event, tagged by the host's integer code."""

    UNKNOWN = -1
    EXECUTION_STARTED = 0
    EXECUTION_COMPLETED = 1
    EXECUTION_FAILED = 2
    EXECUTION_TERMINATED = 3
    TASK_SCHEDULED = 4
    TASK_COMPLETED = 5
    TASK_FAILED = 6
    SUB_ORCHESTRATION_INSTANCE_CREATED = 7
    SUB_ORCHESTRATION_INSTANCE_COMPLETED = 8
    SUB_ORCHESTRATION_INSTANCE_FAILED = 9
    TIMER_CREATED = 10
    TIMER_FIRED = 11
    ORCHESTRATOR_STARTED = 12
    ORCHESTRATOR_COMPLETED = 13
    EVENT_SENT = 14
    EVENT_RAISED = 15
    CONTINUE_AS_NEW = 16
    GENERIC_EVENT = 17
    HISTORY_STATE = 18

    @classmethod
    def _missing_(cls, value: object) -> EventType:
        return cls.UNKNOWN

    @property
    def is_scheduling(self) -> bool:
        """Check if this event records an action issued by the orchestration."""
        return self in _SCHEDULING_TYPES

    @property
    def is_completion(self) -> bool:
        """Check if this event resolves a previously scheduled action."""
        return self in _COMPLETION_TYPES


_SCHEDULING_TYPES = frozenset(
    {
        EventType.TASK_SCHEDULED,
        EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
        EventType.TIMER_CREATED,
    }
)

# scheduling type -> event types that can resolve it
_COMPLETIONS_FOR = {
    EventType.TASK_SCHEDULED: (EventType.TASK_COMPLETED, EventType.TASK_FAILED),
    EventType.SUB_ORCHESTRATION_INSTANCE_CREATED: (
        EventType.SUB_ORCHESTRATION_INSTANCE_COMPLETED,
        EventType.SUB_ORCHESTRATION_INSTANCE_FAILED,
    ),
    EventType.TIMER_CREATED: (EventType.TIMER_FIRED,),
}

_SCHEDULED_BY = {
    completion: scheduled
    for scheduled, completions in _COMPLETIONS_FOR.items()
    for completion in completions
}

_COMPLETION_TYPES = frozenset(_SCHEDULED_BY)

_NAME_REQUIRED = frozenset(
    {
        EventType.TASK_SCHEDULED,
        EventType.SUB_ORCHESTRATION_INSTANCE_CREATED,
        EventType.EVENT_RAISED,
    }
)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z`` and up to 7 fractional digits (the host
    writes .NET ticks); extra precision is truncated to microseconds.
    Naive values are taken to be UTC.

    Raises:
        HistoryFormatError: If the value is not a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise HistoryFormatError(f"Invalid timestamp {value!r}: {e}") from e
    else:
        raise HistoryFormatError(f"Invalid timestamp {value!r}: expected a string")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the host writes timestamps."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _decode_payload(value: Any) -> Any:
    """Decode an ``Input``/``Result`` field.

    The host stores payloads as JSON text inside a string. Text that is
    not valid JSON is kept verbatim.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def _field(raw: dict[str, Any], name: str, *aliases: str) -> Any:
    """Look up a PascalCase field, falling back to camelCase and aliases."""
    for key in (name, name[0].lower() + name[1:], *aliases):
        if key in raw:
            return raw[key]
    return None


def _optional_int(raw: dict[str, Any], name: str) -> int | None:
    value = _field(raw, name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise HistoryFormatError(f"Field {name} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class HistoryEvent:
    """An immutable fact recorded by the host.

    Only ``event_type``, ``event_id`` and ``timestamp`` apply to every
    kind; the remaining fields are filled for the kinds noted beside
    them.
    """

    event_type: EventType
    """Kind of event."""

    event_id: int = -1
    """Sequence id; scheduling events carry increasing ids, others often -1."""

    timestamp: datetime | None = None
    """When the host recorded the event (None only for unknown kinds)."""

    is_played: bool = False
    """Whether a previous pass already saw this event."""

    name: str | None = None
    """ExecutionStarted, TaskScheduled, SubOrchestrationInstanceCreated, EventRaised."""

    input: Any = None
    """ExecutionStarted, TaskScheduled, SubOrchestrationInstanceCreated, EventRaised."""

    result: Any = None
    """TaskCompleted, SubOrchestrationInstanceCompleted."""

    task_scheduled_id: int | None = None
    """Task and sub-orchestration completions and failures."""

    instance_id: str | None = None
    """SubOrchestrationInstanceCreated."""

    reason: str | None = None
    """TaskFailed, SubOrchestrationInstanceFailed, ExecutionTerminated."""

    details: Any = None
    """TaskFailed, SubOrchestrationInstanceFailed."""

    fire_at: datetime | None = None
    """TimerCreated, TimerFired."""

    timer_id: int | None = None
    """TimerFired."""

    raw_type: int | None = None
    """Original integer tag, kept for events of unknown kind."""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> HistoryEvent:
        """Parse one event from its wire form.

        Raises:
            HistoryFormatError: If a known event lacks a field its kind requires
        """
        if not isinstance(raw, dict):
            raise HistoryFormatError(f"History event must be an object, got {type(raw).__name__}")

        tag = _field(raw, "EventType")
        if isinstance(tag, bool) or not isinstance(tag, int):
            raise HistoryFormatError(f"History event has no integer EventType: {raw!r}")

        event_type = EventType(tag)
        if event_type is EventType.UNKNOWN:
            logger.debug(f"Ignoring history event of unknown type {tag}")
            return cls._unknown(raw, tag)

        event_id = _optional_int(raw, "EventId")

        timestamp_raw = _field(raw, "Timestamp")
        if timestamp_raw is None:
            raise HistoryFormatError(f"{event_type.name} event has no Timestamp")

        name = _field(raw, "Name")
        if event_type in _NAME_REQUIRED and not name:
            raise HistoryFormatError(f"{event_type.name} event has no Name")

        task_scheduled_id = _optional_int(raw, "TaskScheduledId")
        if event_type.is_completion and event_type is not EventType.TIMER_FIRED:
            if task_scheduled_id is None:
                raise HistoryFormatError(f"{event_type.name} event has no TaskScheduledId")

        timer_id = _optional_int(raw, "TimerId")
        if event_type is EventType.TIMER_FIRED and timer_id is None:
            raise HistoryFormatError("TIMER_FIRED event has no TimerId")

        fire_at_raw = _field(raw, "FireAt")

        return cls(
            event_type=event_type,
            event_id=-1 if event_id is None else event_id,
            timestamp=parse_timestamp(timestamp_raw),
            is_played=bool(_field(raw, "IsPlayed", "Played", "played")),
            name=name,
            input=_decode_payload(_field(raw, "Input")),
            result=_decode_payload(_field(raw, "Result")),
            task_scheduled_id=task_scheduled_id,
            instance_id=_field(raw, "InstanceId"),
            reason=_field(raw, "Reason"),
            details=_decode_payload(_field(raw, "Details")),
            fire_at=parse_timestamp(fire_at_raw) if fire_at_raw is not None else None,
            timer_id=timer_id,
        )

    @classmethod
    def _unknown(cls, raw: dict[str, Any], tag: int) -> HistoryEvent:
        """Keep an event of unknown kind; malformed fields are dropped, never rejected."""
        try:
            event_id = _optional_int(raw, "EventId")
        except HistoryFormatError:
            event_id = None

        timestamp_raw = _field(raw, "Timestamp")
        try:
            timestamp = parse_timestamp(timestamp_raw) if timestamp_raw else None
        except HistoryFormatError:
            timestamp = None

        return cls(
            event_type=EventType.UNKNOWN,
            event_id=-1 if event_id is None else event_id,
            timestamp=timestamp,
            raw_type=tag,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the host's wire form (inverse of ``from_dict``)."""
        data: dict[str, Any] = {
            "EventType": self.raw_type if self.raw_type is not None else int(self.event_type),
            "EventId": self.event_id,
            "IsPlayed": self.is_played,
        }
        if self.timestamp is not None:
            data["Timestamp"] = format_timestamp(self.timestamp)
        if self.name is not None:
            data["Name"] = self.name
        if self.input is not None:
            data["Input"] = json.dumps(self.input)
        if self.result is not None:
            data["Result"] = json.dumps(self.result)
        if self.task_scheduled_id is not None:
            data["TaskScheduledId"] = self.task_scheduled_id
        if self.instance_id is not None:
            data["InstanceId"] = self.instance_id
        if self.reason is not None:
            data["Reason"] = self.reason
        if self.details is not None:
            data["Details"] = json.dumps(self.details)
        if self.fire_at is not None:
            data["FireAt"] = format_timestamp(self.fire_at)
        if self.timer_id is not None:
            data["TimerId"] = self.timer_id
        return data

    def __repr__(self) -> str:
        name_str = f", name={self.name!r}" if self.name else ""
        ref = self.task_scheduled_id if self.task_scheduled_id is not None else self.timer_id
        ref_str = f", ref={ref}" if ref is not None else ""
        return f"HistoryEvent({self.event_type.name}, id={self.event_id}{name_str}{ref_str})"


class History(Sequence[HistoryEvent]):
    """Ordered, validated history of one orchestration instance.

    All lookups take a start position and only scan forward from it.
    Callers keep their own cursors, so a full replay visits each event
    a bounded number of times.

    Raises:
        HistoryFormatError: If a completion references no earlier
            scheduling event of the matching kind
    """

    def __init__(self, events: Iterable[HistoryEvent] = ()):
        self._events: list[HistoryEvent] = list(events)
        self._validate()

    @classmethod
    def from_json(cls, raw: Any) -> History:
        """Build a history from decoded JSON (a list of event objects)."""
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise HistoryFormatError(f"History is not valid JSON: {e}") from e
        if not isinstance(raw, list):
            raise HistoryFormatError(f"History must be a list, got {type(raw).__name__}")
        return cls(HistoryEvent.from_dict(item) for item in raw)

    def to_json(self) -> list[dict[str, Any]]:
        """Serialize every event to its wire form."""
        return [event.to_dict() for event in self._events]

    def _validate(self) -> None:
        scheduled_ids: dict[EventType, set[int]] = {kind: set() for kind in _COMPLETIONS_FOR}

        for event in self._events:
            if event.event_type.is_scheduling:
                scheduled_ids[event.event_type].add(event.event_id)
            elif event.event_type.is_completion:
                scheduled_type = _SCHEDULED_BY[event.event_type]
                ref = (
                    event.timer_id
                    if event.event_type is EventType.TIMER_FIRED
                    else event.task_scheduled_id
                )
                if ref not in scheduled_ids[scheduled_type]:
                    raise HistoryFormatError(
                        f"{event.event_type.name} event references id {ref}, "
                        f"but no earlier {scheduled_type.name} event has that id"
                    )

    # =========================================================================
    # Sequence protocol
    # =========================================================================

    def __len__(self) -> int:
        return len(self._events)

    @overload
    def __getitem__(self, index: int) -> HistoryEvent: ...

    @overload
    def __getitem__(self, index: slice) -> list[HistoryEvent]: ...

    def __getitem__(self, index):
        return self._events[index]

    def __iter__(self) -> Iterator[HistoryEvent]:
        return iter(self._events)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, History):
            return self._events == other._events
        if isinstance(other, list):
            return self._events == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"History({len(self._events)} events)"

    # =========================================================================
    # Forward lookups
    # =========================================================================

    def find_next(self, event_types: EventType | Iterable[EventType], start: int = 0) -> int | None:
        """Index of the first event of one of ``event_types`` at or after ``start``."""
        if isinstance(event_types, EventType):
            wanted = {event_types}
        else:
            wanted = set(event_types)

        for index in range(max(start, 0), len(self._events)):
            if self._events[index].event_type in wanted:
                return index
        return None

    def find_next_scheduled(self, start: int = 0) -> int | None:
        """Index of the next scheduling event at or after ``start``."""
        return self.find_next(_SCHEDULING_TYPES, start)

    def find_completion(self, scheduled_index: int) -> int | None:
        """Index of the event that resolves the scheduling event at ``scheduled_index``.

        Only events after the scheduling event are considered.
        """
        scheduled = self._events[scheduled_index]
        if scheduled.event_type is EventType.TIMER_CREATED:
            return self.find_timer_fired(scheduled_index)

        completions = _COMPLETIONS_FOR.get(scheduled.event_type)
        if completions is None:
            raise ValueError(f"{scheduled.event_type.name} is not a scheduling event")

        for index in range(scheduled_index + 1, len(self._events)):
            event = self._events[index]
            if event.event_type in completions and event.task_scheduled_id == scheduled.event_id:
                return index
        return None

    def find_timer_fired(self, created_index: int) -> int | None:
        """Index of the ``TimerFired`` event for the timer created at ``created_index``."""
        timer_id = self._events[created_index].event_id
        for index in range(created_index + 1, len(self._events)):
            event = self._events[index]
            if event.event_type is EventType.TIMER_FIRED and event.timer_id == timer_id:
                return index
        return None

    def find_raised_event(self, name: str, start: int = 0) -> int | None:
        """Index of the next ``EventRaised`` named ``name`` at or after ``start``."""
        for index in range(max(start, 0), len(self._events)):
            event = self._events[index]
            if event.event_type is EventType.EVENT_RAISED and event.name == name:
                return index
        return None
