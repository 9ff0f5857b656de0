"""Replay-safe logging for orchestration bodies.

An orchestration body re-runs from the start on every pass, so a plain
``logger.info`` inside it fires once per pass for every step already in
history. ``ReplaySafeLogger`` drops records while the body is replaying
and tags the rest with the instance id.
"""

import logging
from collections.abc import Callable, MutableMapping
from typing import Any


class ReplaySafeLogger(logging.LoggerAdapter):
    """
    Logger adapter that is silent while the body is replaying.

    Args:
        logger: Underlying logger
        instance_id: Added to every record as ``extra["instance_id"]``
        is_replaying: Callable polled on each log call
        enabled: When False, records are never dropped

    Example:
        ```python
        context.logger.info(f"Charging order {order_id}")
        ```
    """

    def __init__(
        self,
        logger: logging.Logger,
        instance_id: str,
        is_replaying: Callable[[], bool],
        enabled: bool = True,
    ):
        super().__init__(logger, {"instance_id": instance_id})
        self._is_replaying = is_replaying
        self._enabled = enabled

    def isEnabledFor(self, level: int) -> bool:  # noqa: N802
        if self._enabled and self._is_replaying():
            return False
        return self.logger.isEnabledFor(level)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs
