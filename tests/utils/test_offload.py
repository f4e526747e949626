import asyncio
import time

import pytest

from task_messenger.shared.utils.offload import OffloadTimeoutError, run_with_timeout


def test_returns_worker_result():
    async def test_logic():
        return await run_with_timeout(len, ("abc",), 30)

    assert asyncio.run(test_logic()) == 3


def test_slow_worker_is_terminated():
    async def test_logic():
        started = time.monotonic()
        with pytest.raises(OffloadTimeoutError) as exc_info:
            await run_with_timeout(time.sleep, (30,), 0.5)
        return time.monotonic() - started, exc_info.value

    elapsed, error = asyncio.run(test_logic())
    assert error.timeout_seconds == 0.5
    assert elapsed < 20


def test_worker_exceptions_propagate():
    async def test_logic():
        with pytest.raises(ValueError):
            await run_with_timeout(int, ("not a number",), 30)

    asyncio.run(test_logic())
