"""Backoff policy for re-sending requests after transient failures.

Only idempotent methods are ever re-sent; anything with side effects on
the server gets exactly one attempt.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

__all__ = ["RetryConfig", "RetryExhausted", "NO_RETRY", "IDEMPOTENT_METHODS", "retry_with_backoff"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class RetryConfig:
    """How often and how patiently to re-send a request."""

    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (0-indexed) failed attempt."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            # +/- 25%
            delay += random.uniform(-delay * 0.25, delay * 0.25)
        return max(0.0, delay)

    def for_method(self, method: str) -> "RetryConfig":
        """Policy to use for an HTTP method."""
        return self if method.upper() in IDEMPOTENT_METHODS else NO_RETRY


NO_RETRY = RetryConfig(max_retries=0)


class RetryExhausted(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts")


def retry_with_backoff(
    func: Callable[[], T],
    config: Optional[RetryConfig] = None,
    retryable_exceptions: tuple = (Exception,),
    label: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or the policy runs out.

    Args:
        func: Zero-argument callable performing one attempt
        config: Backoff policy (defaults to RetryConfig())
        retryable_exceptions: Errors that warrant another attempt
        label: Shown in log lines, e.g. "GET auth/me"
        sleep: Sleep function (injected in tests)

    Raises:
        RetryExhausted: If every attempt raised a retryable error
    """
    config = config or RetryConfig()
    attempts = config.max_retries + 1
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            return func()
        except retryable_exceptions as e:
            last_error = e
            if attempt + 1 == attempts:
                break
            wait = config.delay(attempt)
            logger.warning(f"{label} failed ({e}), attempt {attempt + 1}/{attempts}, retrying in {wait:.1f}s")
            sleep(wait)

    raise RetryExhausted(attempts, last_error)
