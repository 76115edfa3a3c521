"""Tests for the request backoff policy."""

import pytest
from unittest.mock import Mock

from src.api.retry import NO_RETRY, RetryConfig, RetryExhausted, retry_with_backoff


class TestRetryConfig:
    def test_exponential_growth_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=60.0, jitter=False)

        assert [config.delay(n) for n in range(3)] == [1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)

        assert config.delay(10) == 5.0

    def test_jitter_stays_within_25_percent(self):
        config = RetryConfig(base_delay=4.0, max_delay=60.0, jitter=True)

        for _ in range(50):
            assert 3.0 <= config.delay(0) <= 5.0

    def test_only_idempotent_methods_retry(self):
        config = RetryConfig(max_retries=3)

        assert config.for_method("get") is config
        assert config.for_method("HEAD") is config
        for method in ("POST", "PUT", "PATCH", "DELETE"):
            assert config.for_method(method) is NO_RETRY


class TestRetryWithBackoff:
    def setup_method(self):
        self.sleep = Mock()

    def test_returns_first_success(self):
        func = Mock(return_value="ok")

        assert retry_with_backoff(func, sleep=self.sleep) == "ok"
        assert func.call_count == 1
        self.sleep.assert_not_called()

    def test_retries_until_success(self):
        func = Mock(side_effect=[ValueError("boom"), "ok"])

        result = retry_with_backoff(
            func,
            config=RetryConfig(max_retries=2, base_delay=0.5, jitter=False),
            retryable_exceptions=(ValueError,),
            sleep=self.sleep,
        )

        assert result == "ok"
        assert func.call_count == 2
        self.sleep.assert_called_once_with(0.5)

    def test_exhausted(self):
        func = Mock(side_effect=ValueError("boom"))

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(
                func,
                config=RetryConfig(max_retries=2, jitter=False),
                retryable_exceptions=(ValueError,),
                label="GET auth/me",
                sleep=self.sleep,
            )

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, ValueError)
        assert func.call_count == 3
        assert self.sleep.call_count == 2

    def test_no_retry_makes_one_attempt(self):
        func = Mock(side_effect=ValueError("boom"))

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(func, config=NO_RETRY, retryable_exceptions=(ValueError,), sleep=self.sleep)

        assert exc_info.value.attempts == 1
        self.sleep.assert_not_called()

    def test_non_retryable_propagates(self):
        func = Mock(side_effect=KeyError("nope"))

        with pytest.raises(KeyError):
            retry_with_backoff(func, retryable_exceptions=(ValueError,), sleep=self.sleep)

        assert func.call_count == 1
