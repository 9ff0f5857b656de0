"""
Invocation payload delivered by the host for one replay pass.

The host sends a JSON object carrying the instance identity, the
orchestration input and the full history so far:

    {
        "instanceId": "49497890673e4a75ab380e7a956c607b",
        "parentInstanceId": null,
        "isReplaying": false,
        "input": [],
        "history": [{"EventType": 12, "EventId": -1, ...}, ...]
    }

Design: Value object pattern
    InvocationPayload is a parsed, immutable snapshot. The driver builds
    a fresh orchestration state from it on every pass.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pyreplay.models.errors import HistoryFormatError
from pyreplay.models.history import History


@dataclass(frozen=True)
class InvocationPayload:
    """
    One parsed host invocation.

    Attributes:
        instance_id: Identifier of the orchestration instance
        history: Validated history of the instance so far
        input: Orchestration input (any JSON value)
        parent_instance_id: Parent instance when started as a sub-orchestration
        is_replaying: Host's hint; the engine derives replay state from history
    """

    instance_id: str
    history: History
    input: Any = None
    parent_instance_id: str | None = None
    is_replaying: bool = False

    @classmethod
    def parse(cls, raw: str | bytes | dict[str, Any]) -> InvocationPayload:
        """
        Parse an invocation from JSON text or an already-decoded object.

        Args:
            raw: Payload as JSON text, bytes, or dict

        Returns:
            Parsed InvocationPayload

        Raises:
            HistoryFormatError: If the payload or its history is malformed
        """
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise HistoryFormatError(f"Invocation payload is not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise HistoryFormatError(
                f"Invocation payload must be an object, got {type(raw).__name__}"
            )

        instance_id = raw.get("instanceId")
        if not isinstance(instance_id, str) or not instance_id:
            raise HistoryFormatError("Invocation payload has no instanceId")

        if "history" not in raw:
            raise HistoryFormatError("Invocation payload has no history")

        parent_instance_id = raw.get("parentInstanceId")
        if parent_instance_id is not None and not isinstance(parent_instance_id, str):
            raise HistoryFormatError(
                f"parentInstanceId must be a string or null, got {parent_instance_id!r}"
            )

        return cls(
            instance_id=instance_id,
            history=History.from_json(raw["history"]),
            input=raw.get("input"),
            parent_instance_id=parent_instance_id,
            is_replaying=bool(raw.get("isReplaying", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the host's wire form."""
        return {
            "instanceId": self.instance_id,
            "parentInstanceId": self.parent_instance_id,
            "isReplaying": self.is_replaying,
            "input": self.input,
            "history": self.history.to_json(),
        }

    def __repr__(self) -> str:
        return (
            f"InvocationPayload(instance_id={self.instance_id!r}, "
            f"history={len(self.history)} events)"
        )
