"""
Retry options for activities and sub-orchestrations.

Design Pattern: Strategy Pattern
RetryOptions encapsulates retry behavior. The orchestration only
attaches it to a ``*WithRetry`` action; the host applies it when it
executes the work, so the orchestration body sees one final result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast


@dataclass(frozen=True)
class RetryOptions:
    """
    Configuration for host-side retries of a scheduled task.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        options = RetryOptions.with_max_attempts(3)

        # Named options: predefined sensible defaults
        options = RetryOptions.STANDARD

        # Custom options: full control
        options = RetryOptions(
            first_retry_interval_ms=1000,
            max_number_of_attempts=5,
            backoff_coefficient=2.0,
            max_retry_interval_ms=30000,
        )
    """

    first_retry_interval_ms: int
    """Delay before the first retry in milliseconds."""

    max_number_of_attempts: int
    """Maximum number of attempts (including the first try)."""

    backoff_coefficient: float = 1.0
    """Multiplier applied to the delay after each retry.

    Each retry delay is calculated as:
    min(first_retry_interval * backoff_coefficient^(attempt-1), max_retry_interval)
    """

    max_retry_interval_ms: int | None = None
    """Upper bound for a single retry delay (None means no cap)."""

    if TYPE_CHECKING:
        NONE: RetryOptions
        STANDARD: RetryOptions
        AGGRESSIVE: RetryOptions
    else:
        NONE = cast("RetryOptions", None)
        STANDARD = cast("RetryOptions", None)
        AGGRESSIVE = cast("RetryOptions", None)

    def __post_init__(self) -> None:
        if self.first_retry_interval_ms < 0:
            raise ValueError("first_retry_interval_ms must not be negative")
        if self.max_number_of_attempts < 1:
            raise ValueError("max_number_of_attempts must be at least 1")
        if self.backoff_coefficient < 1.0:
            raise ValueError("backoff_coefficient must be at least 1.0")

    @classmethod
    def with_max_attempts(cls, max_number_of_attempts: int) -> RetryOptions:
        """
        Create options with custom max attempts (uses standard delays).

        Args:
            max_number_of_attempts: Maximum number of attempts

        Returns:
            RetryOptions with standard delays
        """
        return cls(
            first_retry_interval_ms=1000,
            max_number_of_attempts=max_number_of_attempts,
            backoff_coefficient=2.0,
            max_retry_interval_ms=30000,
        )

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next retry attempt.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds before the next retry, or None if no more retries.

        Example:
            options = RetryOptions(first_retry_interval_ms=1000, max_number_of_attempts=3,
                                   backoff_coefficient=2.0)
            options.delay_for_attempt(1)  # 1000
            options.delay_for_attempt(2)  # 2000
            options.delay_for_attempt(3)  # None (max attempts)
        """
        if attempt >= self.max_number_of_attempts:
            return None

        delay_ms = self.first_retry_interval_ms * self.backoff_coefficient ** (attempt - 1)
        if self.max_retry_interval_ms is not None:
            delay_ms = min(delay_ms, self.max_retry_interval_ms)

        return int(delay_ms)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase form carried by retry actions."""
        data: dict[str, Any] = {
            "firstRetryIntervalInMilliseconds": self.first_retry_interval_ms,
            "maxNumberOfAttempts": self.max_number_of_attempts,
        }
        if self.backoff_coefficient != 1.0:
            data["backoffCoefficient"] = self.backoff_coefficient
        if self.max_retry_interval_ms is not None:
            data["maxRetryIntervalInMilliseconds"] = self.max_retry_interval_ms
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryOptions:
        """Inverse of ``to_dict``."""
        return cls(
            first_retry_interval_ms=data["firstRetryIntervalInMilliseconds"],
            max_number_of_attempts=data["maxNumberOfAttempts"],
            backoff_coefficient=data.get("backoffCoefficient", 1.0),
            max_retry_interval_ms=data.get("maxRetryIntervalInMilliseconds"),
        )

    def __repr__(self) -> str:
        return (
            f"RetryOptions(first_retry_interval_ms={self.first_retry_interval_ms}, "
            f"max_number_of_attempts={self.max_number_of_attempts}, "
            f"backoff_coefficient={self.backoff_coefficient}, "
            f"max_retry_interval_ms={self.max_retry_interval_ms})"
        )


RetryOptions.NONE = RetryOptions(first_retry_interval_ms=0, max_number_of_attempts=1)

RetryOptions.STANDARD = RetryOptions(
    first_retry_interval_ms=1000,  # 1 second
    max_number_of_attempts=3,
    backoff_coefficient=2.0,
    max_retry_interval_ms=30000,  # 30 seconds
)

RetryOptions.AGGRESSIVE = RetryOptions(
    first_retry_interval_ms=100,  # 100 milliseconds
    max_number_of_attempts=10,
    backoff_coefficient=1.5,
    max_retry_interval_ms=10000,  # 10 seconds
)
