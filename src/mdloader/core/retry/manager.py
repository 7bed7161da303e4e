"""
Retry manager for executing coroutines with exponential backoff.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from mdloader.core.retry.policy import DEFAULT_RETRY_POLICY, RetryPolicy, RetryState
from mdloader.exceptions import RetryError
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.retry.manager")


class RetryManager:
    """
    Runs an async callable under a RetryPolicy.

    Non-retryable exceptions propagate unchanged. When a retryable exception
    is still raised after the last attempt, a RetryError is raised from it
    carrying the attempt history.

    Examples:
        >>> manager = RetryManager()
        >>> status = await manager.execute(client.status, job_id, policy=API_RETRY_POLICY)
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        policy: RetryPolicy | None = None,
        name: str | None = None,
        **kwargs,
    ) -> Any:
        """
        Execute async function with retry logic.

        Args:
            func: Async function to execute
            *args: Positional arguments to pass to func
            policy: Retry policy (defaults to DEFAULT_RETRY_POLICY)
            name: Name used in logs (defaults to the function name)
            **kwargs: Keyword arguments to pass to func

        Returns:
            Result of the first successful execution

        Raises:
            RetryError: retryable failures exhausted every attempt
            Exception: a non-retryable failure, unchanged
        """
        policy = policy or DEFAULT_RETRY_POLICY
        state = RetryState(name=name or getattr(func, "__name__", "call"))

        for attempt in range(policy.max_attempts + 1):
            state.attempt = attempt
            try:
                logger.debug(f"Executing {state.name} (attempt {attempt + 1}/{policy.max_attempts + 1})")
                result = await func(*args, **kwargs)
            except Exception as e:
                state.record_attempt(exception=e)

                if not policy.should_retry(e, attempt):
                    if attempt > 0 and policy.is_retryable(e):
                        logger.error(f"{state.name} failed after {attempt + 1} attempts: {e}")
                        raise RetryError(
                            f"{state.name} failed after {attempt + 1} attempts: {e}",
                            details={"attempts": state.exceptions},
                        ) from e
                    raise

                delay = policy.get_delay(attempt)
                state.record_delay(delay)
                logger.warning(f"{state.name} attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s...")
                await self._sleep(delay)
            else:
                state.record_attempt()
                state.mark_success(result)
                if attempt > 0:
                    logger.info(f"{state.name} succeeded after {attempt + 1} attempts")
                return result

        raise RuntimeError(f"Retry logic error for {state.name}")
