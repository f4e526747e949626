import asyncio
import logging

import pytest

from task_messenger.shared.utils.exceptions import CRMUpdateError
from task_messenger.shared.utils.retry import async_retrying, backoff_wait, clamp_attempts

logger = logging.getLogger("test_retry")


@pytest.mark.parametrize("attempts, expected", [(0, 1), (1, 1), (3, 3), (5, 5), (9, 5)])
def test_clamp_attempts(attempts, expected):
    assert clamp_attempts(attempts) == expected


def test_retries_matching_errors_until_success():
    delays = []
    calls = {"n": 0}

    async def sleep(seconds):
        delays.append(seconds)

    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConnectionError("reset")
        return "ok"

    async def test_logic():
        async for attempt in async_retrying(5, 0.2, ConnectionError, logger, sleep=sleep):
            with attempt:
                result = await flaky()
        return result

    assert asyncio.run(test_logic()) == "ok"
    assert calls["n"] == 3
    assert len(delays) == 2
    assert 0.2 <= delays[0] < 0.3
    assert 0.4 <= delays[1] < 0.5


def test_other_errors_propagate_immediately():
    calls = {"n": 0}

    async def test_logic():
        async for attempt in async_retrying(3, 0.1, ConnectionError, logger, sleep=asyncio.sleep):
            with attempt:
                calls["n"] += 1
                raise KeyError("boom")

    with pytest.raises(KeyError):
        asyncio.run(test_logic())
    assert calls["n"] == 1


def test_should_retry_narrows_matching_errors():
    calls = {"n": 0}

    async def sleep(seconds):
        return None

    async def test_logic():
        retrying = async_retrying(3, 0.1, CRMUpdateError, logger, sleep=sleep, should_retry=lambda e: e.retryable)
        async for attempt in retrying:
            with attempt:
                calls["n"] += 1
                raise CRMUpdateError("INVALID_FIELD", retryable=False)

    with pytest.raises(CRMUpdateError):
        asyncio.run(test_logic())
    assert calls["n"] == 1


def test_last_error_is_reraised_after_final_attempt():
    calls = {"n": 0}

    async def sleep(seconds):
        return None

    async def test_logic():
        async for attempt in async_retrying(2, 0.1, ConnectionError, logger, sleep=sleep):
            with attempt:
                calls["n"] += 1
                raise ConnectionError(f"attempt {calls['n']}")

    with pytest.raises(ConnectionError, match="attempt 2"):
        asyncio.run(test_logic())


def test_backoff_wait_is_exponential_with_jitter():
    wait = backoff_wait(1.0)

    class State:
        def __init__(self, attempt_number):
            self.attempt_number = attempt_number

    for attempt, floor in [(1, 1.0), (2, 2.0), (3, 4.0)]:
        delay = wait(State(attempt))
        assert floor <= delay < floor + 0.1
