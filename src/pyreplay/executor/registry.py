"""Registry mapping names to orchestration and activity functions."""

import logging
from collections.abc import Callable
from typing import Any

from pyreplay.config import ReplayConfig
from pyreplay.decorators import (
    ACTIVITY_KIND,
    ORCHESTRATOR_KIND,
    registration_kind,
    registration_name,
)
from pyreplay.executor.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class Registry:
    """Registry of orchestrators and activities known to a host.

    Orchestration functions are stored wrapped in an Orchestrator
    driver; activities are stored as-is.

    Example:
        ```python
        registry = Registry()

        # Decorated functions register under their marked name
        registry.register(say_hello)
        registry.register(hello_cities)

        # Or register explicitly
        registry.register_activity(lambda name: f"Hello {name}!", name="say_hello")
        ```
    """

    def __init__(self, config: ReplayConfig | None = None):
        """Create a new empty registry.

        Args:
            config: Replay config handed to every registered Orchestrator
        """
        self.config = config or ReplayConfig.DEFAULT
        self._orchestrators: dict[str, Orchestrator] = {}
        self._activities: dict[str, Callable[..., Any]] = {}

    def register(self, func: Callable[..., Any]) -> None:
        """Register a function marked with ``@orchestrator`` or ``@activity``.

        Raises:
            ValueError: If the function carries neither mark
        """
        kind = registration_kind(func)
        if kind == ORCHESTRATOR_KIND:
            self.register_orchestrator(func)
        elif kind == ACTIVITY_KIND:
            self.register_activity(func)
        else:
            raise ValueError(
                f"{func!r} is not decorated with @orchestrator or @activity; "
                f"use register_orchestrator() or register_activity()"
            )

    def register_orchestrator(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        config: ReplayConfig | None = None,
    ) -> Orchestrator:
        """Register an orchestration function.

        Returns:
            The Orchestrator driver created for it

        Raises:
            ValueError: If the name is already registered
        """
        name = name or registration_name(func)
        if name in self._orchestrators:
            raise ValueError(f"Orchestrator {name!r} is already registered")

        driver = Orchestrator(func, config or self.config, name=name)
        self._orchestrators[name] = driver
        logger.debug(f"Registered orchestrator: {name}")
        return driver

    def register_activity(self, func: Callable[..., Any], name: str | None = None) -> None:
        """Register an activity function.

        Raises:
            ValueError: If the name is already registered
        """
        name = name or registration_name(func)
        if name in self._activities:
            raise ValueError(f"Activity {name!r} is already registered")

        self._activities[name] = func
        logger.debug(f"Registered activity: {name}")

    def get_orchestrator(self, name: str) -> Orchestrator | None:
        """Get the driver for an orchestration name, or None if unknown."""
        return self._orchestrators.get(name)

    def get_activity(self, name: str) -> Callable[..., Any] | None:
        """Get an activity function by name, or None if unknown."""
        return self._activities.get(name)

    @property
    def orchestrator_names(self) -> list[str]:
        return sorted(self._orchestrators)

    @property
    def activity_names(self) -> list[str]:
        return sorted(self._activities)

    def __len__(self) -> int:
        """Returns the number of registered functions."""
        return len(self._orchestrators) + len(self._activities)

    def is_empty(self) -> bool:
        """Returns True if nothing is registered."""
        return len(self) == 0
