"""
Retry policy for store polling.

Exponential backoff with jitter for riding out transient store failures.
"""

import random
from dataclasses import dataclass
from typing import Any, Optional

from fsconsul.exceptions import ConfigError


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior when a long-poll fails transiently.

    Examples:
        >>> # Retry forever with defaults
        >>> policy = RetryPolicy()

        >>> # Give up after five consecutive failures
        >>> policy = RetryPolicy(max_attempts=5, initial_delay=0.5, max_delay=10.0)
    """

    # Consecutive failed attempts tolerated before the watcher fails (None = unlimited)
    max_attempts: Optional[int] = None

    # Initial delay before first retry (seconds)
    initial_delay: float = 1.0

    # Maximum delay between retries (seconds)
    max_delay: float = 60.0

    # Exponential backoff base (delay = initial_delay * base^attempt)
    exponential_base: float = 2.0

    # Add random jitter to prevent thundering herd (±25% of delay)
    jitter: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts is not None and self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be > 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RetryPolicy":
        """Build a policy from the ``retry`` config section."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"'retry' must be a mapping, got {type(data).__name__}")

        known = {"max_attempts", "initial_delay", "max_delay", "exponential_base", "jitter"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown retry option(s): {', '.join(sorted(unknown))}")

        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid retry configuration: {e}") from e

    def should_retry(self, attempt: int) -> bool:
        """
        Determine if we should retry after a failed attempt.

        Args:
            attempt: Number of consecutive failures so far (1 after the first failure)

        Returns:
            True if we should retry, False otherwise
        """
        if self.max_attempts is None:
            return True
        return attempt <= self.max_attempts

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before next retry using exponential backoff.

        Implements: delay = min(initial_delay * base^attempt, max_delay)
        With optional jitter: delay * random(0.75, 1.25)

        Args:
            attempt: Retry number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        # Large attempt counts overflow float pow long before they matter
        try:
            delay = self.initial_delay * (self.exponential_base**attempt)
        except OverflowError:
            delay = self.max_delay

        if self.jitter:
            delay *= random.uniform(0.75, 1.25)

        # Cap at max_delay (applied after jitter so max_delay is a hard upper bound)
        return min(delay, self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()

FAST_RETRY_POLICY = RetryPolicy(
    max_attempts=None,
    initial_delay=0.01,
    max_delay=0.05,
    exponential_base=2.0,
    jitter=False,
)
