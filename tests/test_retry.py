import pytest
from tenacity import RetryError

from edunotify.core.retry import exponential_retrying, linear_retrying


async def _run(retrying, fn):
    async for attempt in retrying:
        with attempt:
            return await fn(attempt.retry_state.attempt_number)


class TestRetryPolicies:
    """Test the shared backoff policies."""

    async def test_returns_first_success(self, no_sleep):
        calls = []

        async def fn(attempt):
            calls.append(attempt)
            return "ok"

        assert await _run(linear_retrying(3, 1.0, sleep=no_sleep), fn) == "ok"
        assert calls == [1]
        assert no_sleep.delays == []

    async def test_linear_waits_grow_by_base(self, no_sleep):
        async def fn(attempt):
            if attempt < 3:
                raise ConnectionError("flaky")
            return attempt

        assert await _run(linear_retrying(3, 1.0, sleep=no_sleep), fn) == 3
        assert no_sleep.delays == [1.0, 2.0]

    async def test_exponential_exhaustion_does_not_sleep_after_last_attempt(self, no_sleep):
        async def fn(attempt):
            raise ConnectionError(f"failure {attempt}")

        with pytest.raises(RetryError) as exc_info:
            await _run(exponential_retrying(3, 1.0, sleep=no_sleep), fn)

        assert exc_info.value.last_attempt.attempt_number == 3
        assert str(exc_info.value.last_attempt.exception()) == "failure 3"
        assert no_sleep.delays == [2.0, 4.0]

    async def test_unlisted_errors_propagate_immediately(self, no_sleep):
        async def fn(attempt):
            raise KeyError("not transient")

        with pytest.raises(KeyError):
            await _run(linear_retrying(3, 1.0, retry_on=(ConnectionError,), sleep=no_sleep), fn)
        assert no_sleep.delays == []
