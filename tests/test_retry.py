import pytest

from catalog_sync.utils.retry import (
    RetryExhausted,
    RetryPolicy,
    exponential_backoff,
    linear_backoff,
    with_retry,
)
from tests.fakes import RecordingSleeper

pytestmark = pytest.mark.unit


class Flaky:
    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.attempts = []

    async def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error
        return "ok"


def test_policy_delays():
    linear = RetryPolicy(max_attempts=3, base_delay=2.0, backoff=linear_backoff)
    exponential = RetryPolicy(max_attempts=4, base_delay=1.0, backoff=exponential_backoff)

    assert [linear.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]
    assert [exponential.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    sleeper = RecordingSleeper()
    fn = Flaky(failures=2, error=ConnectionError("reset"))

    result = await with_retry(RetryPolicy(max_attempts=3, base_delay=1.0), fn, sleep=sleeper)

    assert result == "ok"
    assert fn.attempts == [1, 2, 3]
    assert sleeper.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_wraps_last_error_without_final_sleep():
    sleeper = RecordingSleeper()
    error = ConnectionError("still down")
    fn = Flaky(failures=5, error=error)

    with pytest.raises(RetryExhausted) as exc_info:
        await with_retry(RetryPolicy(max_attempts=3, base_delay=2.0), fn, sleep=sleeper)

    assert exc_info.value.attempts == 3
    assert exc_info.value.last_error is error
    assert sleeper.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    sleeper = RecordingSleeper()
    fn = Flaky(failures=5, error=KeyError("bad"))

    with pytest.raises(KeyError):
        await with_retry(RetryPolicy(max_attempts=3), fn, retry_on=(ConnectionError,), sleep=sleeper)

    assert fn.attempts == [1]
    assert sleeper.calls == []
