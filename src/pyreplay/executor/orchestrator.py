"""
Orchestrator - one replay pass over an orchestration body.

This module provides Orchestrator, the driver that turns a history and
an input into an ExecutionResult. It never touches an event loop: the
body coroutine is stepped exactly once with ``send(None)``.

- If the body returns during that step, the pass is Completed.
- If it yields an action future (awaited work with no completion in
  history), the coroutine is closed and the pass is Pending.
- If it raises, or yields anything else (live async I/O), the pass is
  Failed.

Design: Single type that holds the body AND provides the pass.
The same Orchestrator is reused for every pass of every instance of one
orchestration function; all per-pass state lives in a fresh
OrchestrationState.

Usage:
    ```python
    orchestrator = Orchestrator(hello_cities)

    outcome = orchestrator.run(history, input=["Tokyo", "London"])
    envelope = orchestrator.handle(payload_json)
    ```
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any

from pyreplay.config import ReplayConfig
from pyreplay.core import EXECUTION_CONTEXT, OrchestrationContext, OrchestrationFuture
from pyreplay.core.state import OrchestrationState
from pyreplay.executor.outcome import ExecutionResult, Failed
from pyreplay.models.errors import InvariantError, NonDeterminismError, ReplayError
from pyreplay.models.history import History
from pyreplay.models.invocation import InvocationPayload

logger = logging.getLogger(__name__)

OrchestratorFunction = Callable[[OrchestrationContext], Any]


def _raised_by_asyncio(error: BaseException) -> bool:
    """Check whether the innermost frame of a traceback lies in the asyncio package."""
    tb = error.__traceback__
    if tb is None:
        return False
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_globals.get("__name__", "").startswith("asyncio")


class Orchestrator:
    """
    Drive an orchestration body through single replay passes.

    Bodies are ``async def`` functions taking an OrchestrationContext.
    Plain functions are accepted too; their return value is the output.

    Usage:
        ```python
        async def hello_cities(context):
            return await context.call_activity("say_hello", "Tokyo")

        outcome = Orchestrator(hello_cities).run(history)

        match outcome:
            case Completed(output=output):
                print(f"Done: {output}")
            case Pending(actions=actions):
                print(f"Schedule: {actions}")
        ```
    """

    def __init__(
        self,
        func: OrchestratorFunction,
        config: ReplayConfig | None = None,
        name: str | None = None,
    ):
        """
        Initialize a driver for one orchestration function.

        Args:
            func: The orchestration body
            config: Determinism checks to apply (default: ReplayConfig.DEFAULT)
            name: Orchestration name (default: the function's registered name)
        """
        self.func = func
        self.config = config or ReplayConfig.DEFAULT
        self.name = name or getattr(func, "_pyreplay_name", None) or func.__name__

    def run(
        self,
        history: History | list[dict[str, Any]] | str,
        input: Any = None,
        instance_id: str = "",
        parent_instance_id: str | None = None,
    ) -> ExecutionResult:
        """
        Run one replay pass.

        Args:
            history: Parsed History, wire-form event list, or JSON text
            input: Orchestration input
            instance_id: Orchestration instance identifier
            parent_instance_id: Parent instance when run as a sub-orchestration

        Returns:
            ExecutionResult: Completed, Pending or Failed. Engine faults
            and exceptions raised by the body are reported as Failed,
            never raised.
        """
        try:
            if not isinstance(history, History):
                history = History.from_json(history)
            state = OrchestrationState(history, self.config)
        except ReplayError as e:
            logger.error(f"Orchestration {self.name} ({instance_id}) rejected history: {e}")
            return Failed.from_exception(e)

        context = OrchestrationContext(
            state,
            instance_id=instance_id,
            input=input,
            parent_instance_id=parent_instance_id,
        )
        self._drive(context)
        return state.outcome()

    def execute(self, payload: InvocationPayload) -> ExecutionResult:
        """Run one replay pass for a parsed host invocation."""
        return self.run(
            payload.history,
            input=payload.input,
            instance_id=payload.instance_id,
            parent_instance_id=payload.parent_instance_id,
        )

    def handle(self, payload: str | bytes | dict[str, Any]) -> str:
        """
        Run one pass for a raw host invocation.

        Args:
            payload: Invocation as JSON text, bytes or a decoded dict

        Returns:
            The JSON response envelope
        """
        try:
            invocation = InvocationPayload.parse(payload)
        except ReplayError as e:
            logger.error(f"Orchestration {self.name} rejected invocation: {e}")
            return Failed.from_exception(e).to_json()

        return self.execute(invocation).to_json()

    # =========================================================================
    # Pass driver
    # =========================================================================

    def _drive(self, context: OrchestrationContext) -> None:
        """Step the body once and record the result on the context's state."""
        state = context.state
        token = EXECUTION_CONTEXT.set(context)
        try:
            try:
                body = self.func(context)
                if inspect.iscoroutine(body):
                    self._step(body, state)
                else:
                    self._complete(state, body)
            except Exception as e:
                # Engine faults win over whatever the body raised after catching one
                state.set_failure(state.fault or e)

            if state.fault is not None and state.error is None:
                state.set_failure(state.fault)
        finally:
            EXECUTION_CONTEXT.reset(token)

        self._log_pass(context)

    def _step(self, body: Any, state: OrchestrationState) -> None:
        try:
            yielded = body.send(None)
        except StopIteration as stop:
            self._complete(state, stop.value)
            return
        except RuntimeError as e:
            # asyncio primitives awaited with no loop running
            if _raised_by_asyncio(e):
                raise state.record_fault(
                    NonDeterminismError(
                        f"Orchestration used asyncio directly ({e}); only futures returned "
                        f"by the orchestration context may be awaited"
                    )
                ) from e
            raise

        try:
            body.close()
        except RuntimeError as e:
            # The body awaited again while being closed
            raise state.record_fault(
                InvariantError(f"Orchestration body resumed while suspending: {e}")
            ) from e

        if not isinstance(yielded, OrchestrationFuture):
            if isinstance(yielded, asyncio.Future):
                yielded.cancel()
            raise state.record_fault(
                NonDeterminismError(
                    f"Orchestration awaited {type(yielded).__name__} {yielded!r}; only futures "
                    f"returned by the orchestration context may be awaited"
                )
            )

        logger.debug(f"Orchestration {self.name} suspended on {yielded!r}")

    def _complete(self, state: OrchestrationState, output: Any) -> None:
        if self.config.check_unconsumed_history:
            leftover = state.unconsumed_scheduled_events()
            if leftover:
                events = ", ".join(repr(state.history[index]) for index in leftover)
                raise state.record_fault(
                    NonDeterminismError(
                        f"Orchestration completed without issuing actions recorded in "
                        f"history: {events}"
                    )
                )

        if state.continued_as_new:
            output = None

        try:
            json.dumps(output)
        except (TypeError, ValueError) as e:
            raise TypeError(f"Orchestration output must be JSON-serializable: {e}") from e

        state.set_output(output)

    def _log_pass(self, context: OrchestrationContext) -> None:
        state = context.state
        error = state.error

        if error is None:
            if state.is_done:
                logger.debug(f"Orchestration {self.name} ({context.instance_id}) completed")
            else:
                logger.debug(
                    f"Orchestration {self.name} ({context.instance_id}) pending with "
                    f"{len(state.new_actions)} new actions"
                )
        elif isinstance(error, ReplayError):
            logger.error(
                f"Orchestration {self.name} ({context.instance_id}) failed fatally: "
                f"{type(error).__name__}: {error}"
            )
        else:
            logger.error(
                f"Orchestration {self.name} ({context.instance_id}) raised "
                f"{type(error).__name__}: {error}"
            )

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return f"Orchestrator(name={self.name!r})"


# =============================================================================
# Helper Functions
# =============================================================================


def run_orchestrator(
    func: OrchestratorFunction,
    history: History | list[dict[str, Any]] | str,
    input: Any = None,
    instance_id: str = "",
    config: ReplayConfig | None = None,
) -> ExecutionResult:
    """
    Convenience function for a one-off replay pass.

    Example:
        ```python
        outcome = run_orchestrator(hello_cities, history, input="Tokyo")
        if isinstance(outcome, Completed):
            print(f"Output: {outcome.output}")
        ```
    """
    return Orchestrator(func, config).run(history, input=input, instance_id=instance_id)
