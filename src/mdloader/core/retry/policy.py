"""
Retry policy configuration for external calls.

Exponential backoff with jitter for the annotation services.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type

import aiohttp


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior when an external call fails.

    Examples:
        >>> policy = RetryPolicy(max_attempts=3)

        >>> policy = RetryPolicy(
        ...     max_attempts=5,
        ...     initial_delay=2.0,
        ...     max_delay=60.0,
        ...     retryable_exceptions=(aiohttp.ClientError,),
        ... )
    """

    # Maximum number of retry attempts (total executions = max_attempts + 1)
    max_attempts: int = 3

    # Initial delay before first retry (seconds)
    initial_delay: float = 1.0

    # Maximum delay between retries (seconds)
    max_delay: float = 30.0

    # Exponential backoff base (delay = initial_delay * base^attempt)
    exponential_base: float = 2.0

    # Add random jitter (±25% of delay)
    jitter: bool = True

    # Only retry these exception types (None = retry all exceptions)
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None

    # Custom retry condition: (exception, attempt) -> bool
    retry_condition: Optional[Callable[[BaseException, int], bool]] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be > 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")

    def should_retry(self, exception: BaseException, attempt: int) -> bool:
        """
        Determine if we should retry after this exception.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-indexed)

        Returns:
            True if we should retry, False otherwise
        """
        if attempt >= self.max_attempts:
            return False
        if self.retry_condition is not None:
            return self.retry_condition(exception, attempt)
        if self.retryable_exceptions is not None:
            return isinstance(exception, self.retryable_exceptions)
        return True

    def is_retryable(self, exception: BaseException) -> bool:
        """Whether the exception type would be retried at all, ignoring attempt counts."""
        if self.retryable_exceptions is None:
            return True
        return isinstance(exception, self.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before next retry using exponential backoff.

        delay = min(initial_delay * base^attempt * jitter, max_delay)

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = self.initial_delay * (self.exponential_base ** attempt)
        if self.jitter:
            delay *= random.uniform(0.75, 1.25)
        return min(delay, self.max_delay)


@dataclass
class RetryState:
    """Retry history for one call, kept for logging and error details."""

    name: str
    attempt: int = 0
    total_attempts: int = 0
    exceptions: list = field(default_factory=list)
    delays: list = field(default_factory=list)
    result: Any = None
    succeeded: bool = False

    def record_attempt(self, exception: Optional[BaseException] = None):
        """Record an attempt and its failure, if any."""
        self.total_attempts += 1
        if exception is not None:
            self.exceptions.append(
                {
                    "attempt": self.attempt,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                }
            )

    def record_delay(self, delay: float):
        self.delays.append(delay)

    def mark_success(self, result: Any):
        self.succeeded = True
        self.result = result


# Pre-configured policies

DEFAULT_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=1.0,
    max_delay=30.0,
    exponential_base=2.0,
    jitter=True,
)

# EBI services: 3 retries, backing off from the ~30 s polling cadence
API_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=20.0,
    max_delay=120.0,
    exponential_base=2.0,
    jitter=True,
    retryable_exceptions=(
        aiohttp.ClientError,
        TimeoutError,
        ConnectionError,
    ),
)

NO_RETRY_POLICY = RetryPolicy(max_attempts=0)
