"""Status enumerations for replay passes and orchestration instances.

Defines the outcome of a single replay pass and the lifecycle states
of an orchestration instance tracked by a history store.
"""

from enum import Enum


class PassStatus(Enum):
    """Outcome of a single replay pass.

    Lifecycle:
        PENDING → PENDING → ... → SUCCESS | FAILED

    Every pass ends in exactly one of these states. A pending pass is
    redelivered by the host once new history has been appended.
    """

    SUCCESS = "success"
    """The orchestration body returned (or continued as new)."""

    PENDING = "pending"
    """The body awaited an action whose completion is not in history yet."""

    FAILED = "failed"
    """The body raised, or the pass hit a fatal engine condition."""

    @property
    def is_done(self) -> bool:
        """Check if no further pass is needed for this execution."""
        return self in (PassStatus.SUCCESS, PassStatus.FAILED)

    def __str__(self) -> str:
        return self.value


class InstanceStatus(Enum):
    """Runtime status of an orchestration instance.

    Lifecycle:
        PENDING → RUNNING → COMPLETED | FAILED | TERMINATED
        RUNNING → CONTINUED_AS_NEW → RUNNING

    Stored as the uppercase name by the SQLite history store.
    """

    PENDING = "PENDING"
    """Instance was created but no pass has run yet."""

    RUNNING = "RUNNING"
    """At least one pass has run and the orchestration is waiting on work."""

    COMPLETED = "COMPLETED"
    """The orchestration returned an output."""

    FAILED = "FAILED"
    """The orchestration raised or a pass failed fatally."""

    TERMINATED = "TERMINATED"
    """The instance was terminated from outside."""

    CONTINUED_AS_NEW = "CONTINUED_AS_NEW"
    """The instance restarted itself with fresh history and a new input."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more passes will run)."""
        return self in (
            InstanceStatus.COMPLETED,
            InstanceStatus.FAILED,
            InstanceStatus.TERMINATED,
        )

    def __str__(self) -> str:
        return self.value
