"""
Core replay machinery.

This module contains the engine's building blocks:
- OrchestrationState: History cursors, new actions and output of one pass
- ActionFuture: The suspension primitive awaited by orchestration bodies
- JoinAll / SelectAll: Combinators over futures
- OrchestrationContext: The API handed to an orchestration body
- ReplaySafeLogger: Logger that stays silent while replaying
"""

from pyreplay.core.combinators import JoinAll, SelectAll
from pyreplay.core.context import EXECUTION_CONTEXT, OrchestrationContext, get_current_context
from pyreplay.core.futures import _PENDING, ActionFuture, OrchestrationFuture
from pyreplay.core.replay_logger import ReplaySafeLogger
from pyreplay.core.state import OrchestrationState, compute_input_hash

__all__ = [
    "OrchestrationState",
    "compute_input_hash",
    "OrchestrationFuture",
    "ActionFuture",
    "_PENDING",
    "JoinAll",
    "SelectAll",
    "OrchestrationContext",
    "EXECUTION_CONTEXT",
    "get_current_context",
    "ReplaySafeLogger",
]
