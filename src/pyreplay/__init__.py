"""
Pyreplay: Deterministic Replay Orchestration for Python

An orchestration body is an ordinary coroutine function. Each time the
host invokes it, the body is replayed from the start against the
instance's history: awaited work that already has a recorded result
resolves immediately, and the first unresolved await suspends the pass.
The pass then reports either the output, the new actions to schedule,
or a failure.

Design Pattern: Façade Pattern
This module provides a simplified interface to the engine, hiding the
history cursors, futures and storage behind a few names.

Example:
    ```python
    import asyncio
    from pyreplay import (
        InMemoryHistoryStore, LocalHost, Registry, activity, orchestrator,
    )

    @activity
    def say_hello(name):
        return f"Hello {name}!"

    @orchestrator
    async def hello_cities(ctx):
        first = await ctx.call_activity("say_hello", "Tokyo")
        second = await ctx.call_activity("say_hello", "Seattle")
        return [first, second]

    async def main():
        registry = Registry()
        registry.register(say_hello)
        registry.register(hello_cities)

        host = LocalHost(InMemoryHistoryStore(), registry)
        instance_id = await host.start_new("hello_cities")
        record = await host.run_until_idle(instance_id)
        print(record.output)

    asyncio.run(main())
    ```
"""

from pyreplay.config import ReplayConfig
from pyreplay.core import (
    ActionFuture,
    JoinAll,
    OrchestrationContext,
    OrchestrationFuture,
    OrchestrationState,
    ReplaySafeLogger,
    SelectAll,
    get_current_context,
)
from pyreplay.decorators import activity, orchestrator
from pyreplay.executor import (
    Completed,
    ExecutionResult,
    Failed,
    LocalHost,
    Orchestrator,
    Pending,
    Registry,
    is_completed,
    is_failed,
    is_pending,
    run_orchestrator,
)
from pyreplay.models import (
    Action,
    ActivityFailedError,
    CallActivity,
    CallActivityWithRetry,
    CallSubOrchestrator,
    CallSubOrchestratorWithRetry,
    ContinueAsNew,
    CreateTimer,
    EventType,
    History,
    HistoryEvent,
    HistoryFormatError,
    InstanceStatus,
    InvariantError,
    InvocationPayload,
    NonDeterminismError,
    PassStatus,
    ReplayError,
    RetryOptions,
    SubOrchestrationFailedError,
    TaskFailedError,
    WaitForExternalEvent,
    is_task_failure,
)
from pyreplay.storage import (
    HistoryStore,
    InMemoryHistoryStore,
    InstanceNotFoundError,
    InstanceRecord,
    SqliteHistoryStore,
    StorageError,
)

# Version
__version__ = "0.1.0"

__all__ = [
    # Configuration
    "ReplayConfig",
    # Engine
    "OrchestrationContext",
    "OrchestrationState",
    "OrchestrationFuture",
    "ActionFuture",
    "JoinAll",
    "SelectAll",
    "ReplaySafeLogger",
    "get_current_context",
    # Decorators
    "orchestrator",
    "activity",
    # Execution
    "Orchestrator",
    "run_orchestrator",
    "Completed",
    "Pending",
    "Failed",
    "ExecutionResult",
    "is_completed",
    "is_pending",
    "is_failed",
    "Registry",
    "LocalHost",
    # Models
    "Action",
    "CallActivity",
    "CallActivityWithRetry",
    "CallSubOrchestrator",
    "CallSubOrchestratorWithRetry",
    "ContinueAsNew",
    "CreateTimer",
    "WaitForExternalEvent",
    "EventType",
    "History",
    "HistoryEvent",
    "InvocationPayload",
    "RetryOptions",
    "InstanceStatus",
    "PassStatus",
    # Errors
    "ReplayError",
    "HistoryFormatError",
    "NonDeterminismError",
    "InvariantError",
    "TaskFailedError",
    "ActivityFailedError",
    "SubOrchestrationFailedError",
    "is_task_failure",
    # Storage
    "HistoryStore",
    "InstanceRecord",
    "StorageError",
    "InstanceNotFoundError",
    "InMemoryHistoryStore",
    "SqliteHistoryStore",
]
