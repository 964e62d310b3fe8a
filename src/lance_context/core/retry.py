"""Retry policy for embedding backend calls.

Connectivity failures and backend responses with status 429 or 5xx are
retried with exponential backoff. Any other error propagates on the first
attempt. When attempts run out the last error is re-raised unchanged.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import RetryConfig
from .exceptions import BackendError, ConnectivityError

T = TypeVar("T")


def is_transient_error(error: BaseException) -> bool:
    """Whether an error is worth retrying."""
    if isinstance(error, ConnectivityError):
        return True
    if isinstance(error, BackendError):
        return error.is_transient
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        f"⚠ Transient embedding failure (attempt {retry_state.attempt_number}): "
        f"{error}; retrying in {delay:.1f}s"
    )


class RetryPolicy:
    """Exponential backoff wrapper around async callables.

    Example:
        policy = RetryPolicy(RetryConfig(max_retries=3))
        vectors = await policy.call(backend._request, texts)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the retry policy.

        Args:
            config: Attempt count and backoff parameters
            sleep: Awaitable sleep used between attempts (injectable for tests)
        """
        self.config = config or RetryConfig()
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries + 1

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.initial_delay,
                exp_base=self.config.backoff_factor,
                max=self.config.max_delay,
            ),
            retry=retry_if_exception(is_transient_error),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``fn(*args, **kwargs)`` under the retry policy."""
        async for attempt in self._retrying():
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable: tenacity re-raises on exhaustion")
