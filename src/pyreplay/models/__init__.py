"""Data models for replay passes.

Defines the history event model, action descriptors, retry options,
the host invocation payload, status enums and the exception types.

Design: Dependency-Free Models
These types have no dependencies on core, executor or storage modules
to prevent circular imports and enable clean layering.
"""

from pyreplay.models.actions import (
    Action,
    CallActivity,
    CallActivityWithRetry,
    CallSubOrchestrator,
    CallSubOrchestratorWithRetry,
    ContinueAsNew,
    CreateTimer,
    WaitForExternalEvent,
)
from pyreplay.models.errors import (
    ActivityFailedError,
    HistoryFormatError,
    InvariantError,
    NonDeterminismError,
    ReplayError,
    SubOrchestrationFailedError,
    TaskFailedError,
    is_task_failure,
)
from pyreplay.models.history import (
    EventType,
    History,
    HistoryEvent,
    format_timestamp,
    parse_timestamp,
)
from pyreplay.models.invocation import InvocationPayload
from pyreplay.models.retry import RetryOptions
from pyreplay.models.status import InstanceStatus, PassStatus

__all__ = [
    "Action",
    "CallActivity",
    "CallActivityWithRetry",
    "CallSubOrchestrator",
    "CallSubOrchestratorWithRetry",
    "ContinueAsNew",
    "CreateTimer",
    "WaitForExternalEvent",
    "ReplayError",
    "HistoryFormatError",
    "NonDeterminismError",
    "InvariantError",
    "TaskFailedError",
    "ActivityFailedError",
    "SubOrchestrationFailedError",
    "is_task_failure",
    "EventType",
    "History",
    "HistoryEvent",
    "format_timestamp",
    "parse_timestamp",
    "InvocationPayload",
    "RetryOptions",
    "InstanceStatus",
    "PassStatus",
]
