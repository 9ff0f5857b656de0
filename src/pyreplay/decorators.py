"""
Decorators marking orchestration and activity functions.

``@orchestrator`` and ``@activity`` attach a registration name and kind
to a function without wrapping it, so the function can still be called
directly in unit tests. ``Registry.register`` reads the marks.

Example:
    ```python
    @activity
    async def say_hello(name: str) -> str:
        return f"Hello {name}!"

    @orchestrator(name="HelloCities")
    async def hello_cities(context):
        return await context.call_activity("say_hello", "Tokyo")

    registry = Registry()
    registry.register(say_hello)
    registry.register(hello_cities)
    ```
"""

from collections.abc import Callable
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

ORCHESTRATOR_KIND = "orchestrator"
ACTIVITY_KIND = "activity"


def _mark(func: F, kind: str, name: str | None) -> F:
    if not callable(func):
        raise TypeError(f"@{kind} must decorate a callable, got {type(func).__name__}")
    func._pyreplay_kind = kind  # type: ignore[attr-defined]
    func._pyreplay_name = name or func.__name__  # type: ignore[attr-defined]
    return func


def orchestrator(func: F | None = None, *, name: str | None = None) -> F:
    """
    Mark a function as an orchestration body.

    Args:
        func: The function to decorate
        name: Registration name (default: the function's ``__name__``)

    Example:
        ```python
        @orchestrator
        async def hello_cities(context):
            ...

        @orchestrator(name="HelloCities")
        async def hello_cities_v2(context):
            ...
        ```
    """
    if func is None:
        return lambda f: _mark(f, ORCHESTRATOR_KIND, name)  # type: ignore[return-value]
    return _mark(func, ORCHESTRATOR_KIND, name)


def activity(func: F | None = None, *, name: str | None = None) -> F:
    """
    Mark a function as an activity.

    Activities do the real work (I/O, side effects) and run on the
    host, never inside a replay pass. They may be coroutines or plain
    functions taking one JSON-serializable input.
    """
    if func is None:
        return lambda f: _mark(f, ACTIVITY_KIND, name)  # type: ignore[return-value]
    return _mark(func, ACTIVITY_KIND, name)


def registration_name(func: Callable[..., Any]) -> str:
    """Name a decorated function registers under (``__name__`` if undecorated)."""
    return getattr(func, "_pyreplay_name", None) or func.__name__


def registration_kind(func: Callable[..., Any]) -> str | None:
    """``"orchestrator"``, ``"activity"``, or None if undecorated."""
    return getattr(func, "_pyreplay_kind", None)
