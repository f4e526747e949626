"""
Retry policy shared by outbound calls (provider sends, CRM write-backs).

Delay before attempt n+1 is base × 2^(n-1) plus uniform jitter in
[0, RETRY_JITTER_MS) milliseconds.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, Union

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    wait_random,
    retry_if_exception,
    retry_if_exception_type,
    before_sleep_log,
)

from task_messenger.shared.core.constants import MAX_RETRY_ATTEMPTS_CEILING, RETRY_JITTER_MS

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


def clamp_attempts(attempts: int) -> int:
    return min(max(attempts, 1), MAX_RETRY_ATTEMPTS_CEILING)


def backoff_wait(base_seconds: float):
    """tenacity wait strategy for the formula above."""
    return wait_exponential(multiplier=base_seconds, exp_base=2) + wait_random(0, RETRY_JITTER_MS / 1000.0)


def async_retrying(
    attempts: int,
    base_seconds: float,
    retry_on: ExceptionTypes,
    logger: logging.Logger,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    should_retry: Optional[Callable[[BaseException], bool]] = None
) -> AsyncRetrying:
    """
    Build an AsyncRetrying controller.

    Retries only on retry_on (narrowed further by should_retry when given);
    anything else propagates from the first attempt.
    After the last attempt the final exception is re-raised as-is.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(clamp_attempts(attempts)),
        wait=backoff_wait(base_seconds),
        retry=retry_if_exception(lambda e: isinstance(e, retry_on) and should_retry(e))
        if should_retry else retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True
    )
