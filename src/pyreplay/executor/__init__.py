"""
Executor module - Runtime for replay passes.

This module contains the execution components:
- orchestrator: Drives one replay pass of an orchestration body
- outcome: ExecutionResult state machine (Completed/Pending/Failed)
- registry: Orchestrators and activities by name
- host: LocalHost, an in-process runtime that persists history
"""

from pyreplay.executor.host import LocalHost
from pyreplay.executor.orchestrator import Orchestrator, run_orchestrator
from pyreplay.executor.outcome import (
    Completed,
    ExecutionResult,
    Failed,
    Pending,
    is_completed,
    is_failed,
    is_pending,
)
from pyreplay.executor.registry import Registry

__all__ = [
    # Replay passes
    "Orchestrator",
    "run_orchestrator",
    # ExecutionResult state machine
    "Completed",
    "Pending",
    "Failed",
    "ExecutionResult",
    "is_completed",
    "is_pending",
    "is_failed",
    # Runtime
    "Registry",
    "LocalHost",
]
