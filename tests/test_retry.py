"""
Tests for retry.py - the shared retry policy and per-provider circuit breaker.
"""

import pytest

from prfinder.retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    RetryPolicy,
    is_transient_error,
    should_retry_http_status,
)


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls, then returns ``value``."""

    def __init__(self, failures, error=ConnectionError("reset by peer"), value="ok"):
        self.failures = failures
        self.error = error
        self.value = value
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestRetryPolicy:
    def test_first_try_success(self):
        func = Flaky(0)
        assert RetryPolicy(max_retries=3, base_delay=0.0).call(func) == "ok"
        assert func.calls == 1

    def test_recovers_within_budget(self):
        func = Flaky(2)
        assert RetryPolicy(max_retries=2, base_delay=0.0).call(func) == "ok"
        assert func.calls == 3

    def test_exhaustion_chains_last_error(self):
        func = Flaky(10, error=ValueError("quota exceeded"))

        with pytest.raises(RetryError, match="Failed after 3 attempts: quota exceeded") as excinfo:
            RetryPolicy(max_retries=2, base_delay=0.0).call(func)

        assert func.calls == 3
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_unlisted_exceptions_propagate_at_once(self):
        func = Flaky(1, error=KeyError("bad record"))

        with pytest.raises(KeyError):
            RetryPolicy(max_retries=3, base_delay=0.0).call(func, exceptions=(ConnectionError,))
        assert func.calls == 1

    def test_backoff_and_on_retry(self):
        slept, retried = [], []
        policy = RetryPolicy(max_retries=3, base_delay=0.5, exponential_base=2.0)

        with pytest.raises(RetryError):
            policy.call(
                Flaky(10),
                on_retry=lambda attempt, exc, delay: retried.append((attempt, delay)),
                sleep=slept.append,
            )

        assert slept == [0.5, 1.0, 2.0]
        assert retried == [(1, 0.5), (2, 1.0), (3, 2.0)]

    def test_delay_cap(self):
        policy = RetryPolicy(max_retries=4, base_delay=1.0, max_delay=2.0, exponential_base=3.0)
        assert list(policy.delays()) == [1.0, 2.0, 2.0, 2.0]

    def test_arguments_pass_through(self):
        def area(width, height, unit="ft"):
            return f"{width * height}{unit}"

        assert RetryPolicy(max_retries=0).call(area, 3, 4, unit="m") == "12m"

    def test_zero_retries(self):
        policy = RetryPolicy(max_retries=0)
        assert policy.max_attempts == 1
        assert list(policy.delays()) == []


class TestCircuitBreaker:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    def open_breaker(self, breaker, times):
        for _ in range(times):
            with pytest.raises(ConnectionError):
                breaker.call(Flaky(1))

    def test_closed_passes_calls(self, clock):
        breaker = CircuitBreaker("Radaris", failure_threshold=3, clock=clock)
        assert breaker.call(lambda: "page") == "page"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_opens_at_threshold_and_fails_fast(self, clock):
        breaker = CircuitBreaker("Radaris", failure_threshold=3, recovery_timeout=60, clock=clock)
        self.open_breaker(breaker, 3)
        func = Flaky(0)

        with pytest.raises(CircuitOpenError, match="Circuit breaker is OPEN. Radaris unavailable. Retry after 60s"):
            breaker.call(func)

        assert breaker.state == CircuitBreaker.OPEN
        assert func.calls == 0

    def test_success_resets_failure_count(self, clock):
        breaker = CircuitBreaker(failure_threshold=3, clock=clock)
        self.open_breaker(breaker, 2)
        breaker.call(lambda: None)
        self.open_breaker(breaker, 2)
        assert breaker.state == CircuitBreaker.CLOSED

    def test_trial_call_after_timeout_closes(self, clock):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)
        self.open_breaker(breaker, 2)

        clock.advance(30)

        assert breaker.call(lambda: "back") == "back"
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    def test_failed_trial_reopens_for_full_timeout(self, clock):
        breaker = CircuitBreaker("SearchPeopleFree", failure_threshold=5, recovery_timeout=30, clock=clock)
        self.open_breaker(breaker, 5)
        clock.advance(31)

        self.open_breaker(breaker, 1)

        assert breaker.state == CircuitBreaker.OPEN
        clock.advance(29)
        with pytest.raises(CircuitOpenError):
            breaker.call(lambda: "still blocked")

    def test_manual_reset(self, clock):
        breaker = CircuitBreaker(failure_threshold=1, clock=clock)
        self.open_breaker(breaker, 1)

        breaker.reset()

        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.call(lambda: 1) == 1


@pytest.mark.parametrize("message", [
    "Connection timeout",
    "Read timed out",
    "Connection reset by peer",
    "503 Service Unavailable",
    "429 RESOURCE_EXHAUSTED: Resource exhausted",
    "The model is overloaded",
    "Temporary failure in name resolution",
])
def test_transient_messages(message):
    assert is_transient_error(RuntimeError(message))


@pytest.mark.parametrize("message", ["404 Not Found", "Invalid data", "401 Unauthorized", "API key not valid"])
def test_permanent_messages(message):
    assert not is_transient_error(RuntimeError(message))


def test_retryable_http_statuses():
    assert {s for s in range(200, 600) if should_retry_http_status(s)} == {407, 408, 429, 500, 502, 503, 504}
