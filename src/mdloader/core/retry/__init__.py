"""
Retry framework for transient failures of external services.
"""

from mdloader.core.retry.manager import RetryManager
from mdloader.core.retry.policy import (
    API_RETRY_POLICY,
    DEFAULT_RETRY_POLICY,
    NO_RETRY_POLICY,
    RetryPolicy,
    RetryState,
)

__all__ = [
    "RetryPolicy",
    "RetryState",
    "DEFAULT_RETRY_POLICY",
    "API_RETRY_POLICY",
    "NO_RETRY_POLICY",
    "RetryManager",
]
