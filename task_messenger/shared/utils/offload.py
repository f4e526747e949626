"""
Run a blocking function in a separate worker process with a hard timeout.

A thread cannot be killed once started, so CPU-heavy parsing that must be
abortable goes to a single-use process pool. On timeout the pool is
terminated, which kills the worker process.
"""
import asyncio
import logging
import multiprocessing
from typing import Any, Callable, Sequence

logger = logging.getLogger("offload")


class OffloadTimeoutError(Exception):
    """Raised when the worker did not finish within its budget."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Worker did not finish within {timeout_seconds:g}s")


def _wait_for_result(pool, func: Callable[..., Any], args: Sequence[Any], timeout: float) -> Any:
    async_result = pool.apply_async(func, tuple(args))
    try:
        return async_result.get(timeout)
    except multiprocessing.TimeoutError:
        pool.terminate()
        raise OffloadTimeoutError(timeout)


async def run_with_timeout(func: Callable[..., Any], args: Sequence[Any], timeout: float) -> Any:
    """
    Call func(*args) in a worker process and await its result.

    Args:
        func: A picklable, module-level callable
        args: Picklable positional arguments
        timeout: Wall-clock budget in seconds

    Returns:
        Whatever func returns

    Raises:
        OffloadTimeoutError: the worker was terminated after timeout seconds
        Exception: anything func raised is re-raised here
    """
    pool = multiprocessing.get_context("spawn").Pool(processes=1)
    try:
        return await asyncio.to_thread(_wait_for_result, pool, func, args, timeout)
    finally:
        pool.terminate()
        pool.join()
        logger.debug("Offload worker pool closed")
