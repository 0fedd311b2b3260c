"""
Retry logic with exponential backoff for handling transient failures.

One policy object (max attempts, base delay, exponential factor) is shared
by every retried boundary: oracle calls and provider HTTP requests. The
circuit breaker stops a run from hammering a provider that has started
blocking us.
"""

import re
import time
import threading
from dataclasses import dataclass
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class CircuitOpenError(Exception):
    """Raised when a call is blocked by an open circuit breaker."""
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Multiplier applied to the delay after each retry
    """

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delays(self):
        """Yield the delay used before each retry."""
        delay = self.base_delay
        for _ in range(self.max_retries):
            yield min(delay, self.max_delay)
            delay *= self.exponential_base

    def call(
        self,
        func: Callable,
        *args,
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
        on_retry: Optional[Callable] = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ):
        """
        Call func, retrying on the given exceptions.

        Raises:
            RetryError: chained to the last exception once attempts run out
        """
        delays = self.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                current_delay = next(delays, None)
                if current_delay is None:
                    raise RetryError(
                        f"Failed after {attempt} attempts: {str(e)}"
                    ) from e
                if on_retry:
                    on_retry(attempt, e, current_delay)
                sleep(current_delay)


class CircuitBreaker:
    """
    Stops calls to one provider after repeated failures.

    After ``failure_threshold`` consecutive failures the breaker opens and
    every call fails fast with CircuitOpenError. Once ``recovery_timeout``
    seconds have passed a single trial call goes through (half open): success
    closes the breaker, failure opens it again for another full timeout.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str = "service",
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: Type[Exception] = Exception,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self._clock = clock

        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = self.CLOSED
        self._lock = threading.Lock()

    def call(self, func: Callable, *args, **kwargs):
        """
        Raises:
            CircuitOpenError: while the breaker is open
        """
        with self._lock:
            if self.state == self.OPEN:
                wait = self._seconds_until_trial()
                if wait > 0:
                    raise CircuitOpenError(
                        f"Circuit breaker is OPEN. {self.name} unavailable. Retry after {wait:.0f}s"
                    )
                self.state = self.HALF_OPEN

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise
        self.reset()
        return result

    def _seconds_until_trial(self) -> float:
        if self.opened_at is None:
            return 0
        return max(0.0, self.recovery_timeout - (self._clock() - self.opened_at))

    def _record_failure(self):
        with self._lock:
            self.failure_count += 1
            if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = self.OPEN
                self.opened_at = self._clock()

    def reset(self):
        with self._lock:
            self.failure_count = 0
            self.opened_at = None
            self.state = self.CLOSED


# Network trouble, 5xx, rate limiting and the Gemini API's quota wording
_TRANSIENT_PATTERN = re.compile(
    r"time(d)?\s?out|connection|temporar(y|ily)|unavailable|resource.?exhausted|overloaded|\b(429|500|502|503|504)\b",
    re.I,
)


def is_transient_error(exception: Exception) -> bool:
    """Guess from the message whether retrying the call could succeed."""
    return bool(_TRANSIENT_PATTERN.search(str(exception)))


def should_retry_http_status(status_code: int) -> bool:
    """Check if HTTP status code indicates a retryable error."""
    retryable_codes = {
        407,  # Proxy Authentication Required (unlocker hiccup)
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    return status_code in retryable_codes
