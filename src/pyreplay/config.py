"""
Replay configuration.

Design Pattern: Strategy Pattern
ReplayConfig bundles the determinism checks a pass performs and the
local host's pacing. Presets cover the common cases; ``from_env`` lets
deployments flip individual switches without code changes.

Environment variables read by ``ReplayConfig.from_env``:

    PYREPLAY_CHECK_INPUTS               "1"/"0", "true"/"false", "yes"/"no"
    PYREPLAY_CHECK_UNCONSUMED_HISTORY   same
    PYREPLAY_REPLAY_SAFE_LOGGING        same
    PYREPLAY_WAIT_FOR_TIMERS            same
    PYREPLAY_MAX_PASSES                 positive integer
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, cast

ENV_PREFIX = "PYREPLAY_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e
    if parsed < 1:
        raise ValueError(f"{name} must be at least 1, got {parsed}")
    return parsed


@dataclass(frozen=True)
class ReplayConfig:
    """
    Switches for replay passes and the local host.

    Examples:
        # Default: every determinism check on
        config = ReplayConfig.DEFAULT

        # Lenient: tolerate input drift and leftover history
        config = ReplayConfig.LENIENT

        # From the environment, falling back to defaults
        config = ReplayConfig.from_env()
    """

    check_inputs: bool = True
    """Compare action inputs with the inputs recorded in history."""

    check_unconsumed_history: bool = True
    """Fail a completed pass that left scheduling events unmatched."""

    replay_safe_logging: bool = True
    """Drop ``context.logger`` records while the body is replaying."""

    wait_for_timers: bool = False
    """Let ``LocalHost.run_until_idle`` sleep until the next timer is due."""

    max_passes: int = 100
    """Upper bound on passes per ``LocalHost.run_until_idle`` call."""

    if TYPE_CHECKING:
        DEFAULT: ReplayConfig
        STRICT: ReplayConfig
        LENIENT: ReplayConfig
    else:
        DEFAULT = cast("ReplayConfig", None)
        STRICT = cast("ReplayConfig", None)
        LENIENT = cast("ReplayConfig", None)

    def __post_init__(self) -> None:
        if self.max_passes < 1:
            raise ValueError("max_passes must be at least 1")

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: ReplayConfig | None = None,
    ) -> ReplayConfig:
        """
        Build a config from ``PYREPLAY_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``
            base: Config supplying values for unset variables (default: DEFAULT)

        Returns:
            ReplayConfig with overrides applied

        Raises:
            ValueError: If a variable holds an unparseable value
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}

        for field_name in (
            "check_inputs",
            "check_unconsumed_history",
            "replay_safe_logging",
            "wait_for_timers",
        ):
            var = ENV_PREFIX + field_name.upper()
            if var in env:
                overrides[field_name] = _parse_bool(var, env[var])

        var = ENV_PREFIX + "MAX_PASSES"
        if var in env:
            overrides["max_passes"] = _parse_positive_int(var, env[var])

        return replace(base or cls.DEFAULT, **overrides)

    def with_overrides(self, **changes: Any) -> ReplayConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


ReplayConfig.DEFAULT = ReplayConfig()

ReplayConfig.STRICT = ReplayConfig(
    check_inputs=True,
    check_unconsumed_history=True,
    replay_safe_logging=True,
    wait_for_timers=True,
)

ReplayConfig.LENIENT = ReplayConfig(
    check_inputs=False,
    check_unconsumed_history=False,
)
