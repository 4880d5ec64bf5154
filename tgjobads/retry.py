"""
Retries and failure gating for external collaborators.

The rate feed client and the level classifier wrap their calls in
`exponential_backoff`; the classification stage stops submitting work
once its `CircuitBreaker` opens.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional
from datetime import datetime


class RetryError(Exception):
    """All attempts failed; the last error is the __cause__."""
    pass


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Retry the decorated call, sleeping base_delay, base_delay * base, ...
    (capped at max_delay) between attempts.

    Args:
        max_retries: Retries after the first attempt (0 = call once)
        base_delay: First delay in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Delay growth factor
        exceptions: Errors that trigger a retry; anything else propagates
        on_retry: Optional callback(attempt, exception, delay)

    Raises:
        RetryError: After the last failed attempt
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        raise RetryError(f"Failed after {max_retries + 1} attempts: {e}") from e

                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, e, current_delay)
                    time.sleep(current_delay)
                    delay *= exponential_base

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Counts consecutive failed records and opens after `failure_threshold`.

    The caller checks `is_open` before submitting; once `recovery_timeout`
    seconds have passed since the last failure the breaker half-opens and
    lets work through again. One success closes it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = self.CLOSED

    @property
    def is_open(self) -> bool:
        if self.state == self.OPEN and self._should_attempt_reset():
            self.state = self.HALF_OPEN
        return self.state == self.OPEN

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return elapsed >= self.recovery_timeout

    def record_success(self):
        self.failure_count = 0
        self.state = self.CLOSED

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()
        if self.failure_count >= self.failure_threshold:
            self.state = self.OPEN


TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
    "rate limit",
    "503",
    "502",
    "500",
    "429",
)


def is_transient_error(exception: Exception) -> bool:
    """True for timeouts, connection problems, 5xx and rate limiting."""
    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True
    message = str(exception).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_HTTP_STATUSES
