"""Unit tests for the retry executor."""
import time

import pytest

from hemovault.infrastructure.error_handling import AppError, ErrorKind
from hemovault.infrastructure.retry import (
    DEFAULT_RETRY_CONFIG,
    NO_RETRY,
    RetryConfig,
    is_retryable,
    with_retry,
)


class FlakyOperation:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestRetryConfig:
    """Test retry configuration."""

    def test_defaults(self):
        """Test default policy: 3 attempts, 500 ms base delay."""
        assert DEFAULT_RETRY_CONFIG.max_attempts == 3
        assert DEFAULT_RETRY_CONFIG.base_delay_ms == 500
        assert DEFAULT_RETRY_CONFIG.retryable_check is is_retryable

    def test_delay_progression(self):
        """Test exponential backoff delays."""
        config = RetryConfig(max_attempts=4, base_delay_ms=10, backoff_multiplier=2)

        assert config.delay_for(1) == pytest.approx(0.010)
        assert config.delay_for(2) == pytest.approx(0.020)
        assert config.delay_for(3) == pytest.approx(0.040)

    @pytest.mark.parametrize("kwargs", [
        {'max_attempts': 0},
        {'base_delay_ms': -1},
        {'backoff_multiplier': 0.5},
    ])
    def test_invalid_values(self, kwargs):
        """Test invalid policies are rejected."""
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)

    def test_immutable(self):
        """Test policies can't be changed after construction."""
        with pytest.raises(AttributeError):
            DEFAULT_RETRY_CONFIG.max_attempts = 10


class TestIsRetryable:
    """Test the default retry predicate."""

    def test_typed_retryable(self):
        assert is_retryable(AppError(ErrorKind.TIMEOUT, "t")) is True

    def test_typed_non_retryable(self):
        assert is_retryable(AppError(ErrorKind.NOT_FOUND, "n")) is False

    def test_raw_errors_not_retried(self):
        """Test untyped errors are never retried."""
        assert is_retryable(ConnectionError("raw")) is False


class TestWithRetry:
    """Test retry executor behaviour."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        """Test immediate success makes one call."""
        operation = FlakyOperation([])

        result = await with_retry(operation, RetryConfig(base_delay_ms=0))

        assert result == "ok"
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_eventual_success(self):
        """Test recovery after a transient failure."""
        operation = FlakyOperation([AppError(ErrorKind.CONNECTION, "blip")])

        result = await with_retry(operation, RetryConfig(max_attempts=3, base_delay_ms=1))

        assert result == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_retry_exhaustion(self):
        """Test the last error propagates after max attempts with backoff delays."""
        errors = [AppError(ErrorKind.CONNECTION, f"attempt {i}") for i in range(1, 4)]
        operation = FlakyOperation(list(errors))
        config = RetryConfig(max_attempts=3, base_delay_ms=10, backoff_multiplier=2)

        start = time.monotonic()
        with pytest.raises(AppError) as exc_info:
            await with_retry(operation, config)
        elapsed = time.monotonic() - start

        assert operation.calls == 3
        assert exc_info.value is errors[2]
        assert elapsed >= 0.030

    @pytest.mark.asyncio
    async def test_non_retryable_short_circuit(self):
        """Test a non-retryable error is raised after one call."""
        error = AppError(ErrorKind.VALIDATION, "bad input")
        operation = FlakyOperation([error, error, error])

        with pytest.raises(AppError) as exc_info:
            await with_retry(operation, RetryConfig(max_attempts=5, base_delay_ms=1))

        assert exc_info.value is error
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_raw_error_not_retried(self):
        """Test unclassified errors propagate unchanged on the first failure."""
        error = RuntimeError("unexpected")
        operation = FlakyOperation([error])

        with pytest.raises(RuntimeError) as exc_info:
            await with_retry(operation, RetryConfig(max_attempts=3, base_delay_ms=1))

        assert exc_info.value is error
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        """Test a caller-supplied predicate decides retryability."""
        operation = FlakyOperation([KeyError("a"), KeyError("b")])
        config = RetryConfig(
            max_attempts=3,
            base_delay_ms=1,
            retryable_check=lambda e: isinstance(e, KeyError),
        )

        assert await with_retry(operation, config) == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        """Test the single-attempt policy."""
        operation = FlakyOperation([AppError(ErrorKind.TIMEOUT, "slow")])

        with pytest.raises(AppError):
            await with_retry(operation, NO_RETRY)

        assert operation.calls == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
