"""Tests for the shared backoff loop."""

import pytest

from conftest import RecordingSleep
from upstream_retry import AttemptFailed, RetryError, backoff_delay, retry_with_backoff


class Flaky:
    def __init__(self, failures: int, retriable: bool = True):
        self.failures = failures
        self.retriable = retriable
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise AttemptFailed(f"failure {self.calls}", retriable=self.retriable, payload={"n": self.calls})
        return "done"


def test_backoff_delay_doubles():
    assert [backoff_delay(0.5, k) for k in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 1, 2, 3])
    async def test_n_failures_then_success_takes_n_plus_one_attempts(self, failures):
        sleep = RecordingSleep()
        op = Flaky(failures)

        assert await retry_with_backoff(op, retries=3, base_delay=1.0, sleep=sleep) == "done"
        assert op.calls == failures + 1
        assert sleep.delays == [backoff_delay(1.0, k) for k in range(1, failures + 1)]

    @pytest.mark.asyncio
    async def test_exhaustion_keeps_last_failure(self):
        sleep = RecordingSleep()
        op = Flaky(10)

        with pytest.raises(RetryError) as exc_info:
            await retry_with_backoff(op, retries=2, base_delay=1.0, sleep=sleep)

        assert op.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_failure.payload == {"n": 3}
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retriable_failure_stops_immediately(self):
        sleep = RecordingSleep()
        op = Flaky(10, retriable=False)

        with pytest.raises(RetryError) as exc_info:
            await retry_with_backoff(op, retries=3, base_delay=1.0, sleep=sleep)

        assert op.calls == 1
        assert exc_info.value.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_without_retry(self):
        sleep = RecordingSleep()
        calls = []

        async def broken():
            calls.append(1)
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await retry_with_backoff(broken, retries=3, base_delay=1.0, sleep=sleep)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_last_payload_survives_a_later_failure_without_one(self):
        sleep = RecordingSleep()
        outcomes = [
            AttemptFailed("rejected", payload={"status_code": 40501}),
            AttemptFailed("connection refused"),
        ]

        async def op():
            raise outcomes.pop(0)

        with pytest.raises(RetryError) as exc_info:
            await retry_with_backoff(op, retries=1, base_delay=1.0, sleep=sleep)

        assert str(exc_info.value.last_failure) == "connection refused"
        assert exc_info.value.last_failure.payload is None
        assert exc_info.value.last_payload == {"status_code": 40501}
