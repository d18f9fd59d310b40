"""Bounded retry with backoff for async operations.

Runs an awaitable factory up to ``max_attempts`` times, sleeping between
failures according to :func:`invoice_lookup.lib.backoff.delay_for`.

Implementation: Uses tenacity library internally for the retry loop; the
wait strategy delegates to the pure backoff computation so the delay
sequence stays deterministic and testable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import tenacity
from tenacity.wait import wait_base

from invoice_lookup.lib.backoff import RetryOptions, delay_for
from invoice_lookup.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "BackoffWait",
    "build_wait_strategy",
    "default_retry_if",
    "retry_async",
]

T = TypeVar("T")
Predicate = Callable[[BaseException], bool]
SleepFn = Callable[[float], Awaitable[Any]]


class BackoffWait(wait_base):
    """Tenacity wait strategy backed by :func:`delay_for`."""

    def __init__(self, options: RetryOptions) -> None:
        self.options = options

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        return delay_for(retry_state.attempt_number, self.options)


def build_wait_strategy(options: Optional[RetryOptions] = None) -> wait_base:
    """Build the tenacity wait strategy for ``options`` (defaults if None)."""
    return BackoffWait(options or RetryOptions())


def default_retry_if(exc: BaseException) -> bool:
    """Retry everything except caller bugs."""
    return isinstance(exc, Exception) and not isinstance(exc, ConfigurationError)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    options: Optional[RetryOptions] = None,
    *,
    retry_if: Optional[Predicate] = None,
    operation_name: str = "operation",
    sleep: Optional[SleepFn] = None,
) -> T:
    """Execute an async operation with bounded retry and backoff.

    Attempts run sequentially; the first success is returned immediately.
    When the final attempt fails its exception is re-raised unchanged, so
    callers see the most recent failure rather than the first one.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Maximum number of attempts (must be at least 1)
        options: Backoff configuration (default: 1s doubling, capped at 30s)
        retry_if: Predicate deciding whether an exception is retryable
        operation_name: Name for logging
        sleep: Coroutine used to wait between attempts (default asyncio.sleep)

    Returns:
        Result of the operation

    Raises:
        ConfigurationError: If max_attempts < 1
        Exception: The last attempt's exception once attempts are exhausted

    Example:
        document = await retry_async(
            lambda: fetch_document(scope),
            3,
            RetryOptions(initial_delay=0.5, max_delay=5.0),
            operation_name="fetch document",
        )
    """
    if max_attempts < 1:
        raise ConfigurationError(
            "max_attempts must be at least 1",
            field="max_attempts",
            value=max_attempts,
        )

    options = options or RetryOptions()
    predicate = retry_if or default_retry_if
    sleeper = sleep or asyncio.sleep

    async def _sleep(seconds: float) -> None:
        # zero-length delays skip the sleep entirely
        if seconds > 0:
            await sleeper(seconds)

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        """Log retry attempts."""
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.AsyncRetrying(
        stop=tenacity.stop_after_attempt(max_attempts),
        wait=build_wait_strategy(options),
        retry=tenacity.retry_if_exception(predicate),
        before_sleep=before_sleep_handler,
        sleep=_sleep,
        reraise=True,
    )

    async def _attempt() -> T:
        # tenacity awaits only coroutine functions, not lambdas returning coroutines
        return await operation()

    try:
        return await retryer(_attempt)
    except Exception as exc:
        logger.debug(
            "%s gave up after %d attempt(s): %s",
            operation_name,
            retryer.statistics.get("attempt_number", max_attempts),
            exc,
        )
        raise
