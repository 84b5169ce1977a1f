"""
Tests for Retry Logic
=====================
"""

import pytest


class TestRetry:
    """Tests for retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_retry_success_first_attempt(self):
        """Should succeed without retry if first attempt works."""
        from authlife_core.retry import retry_with_backoff

        call_count = 0

        async def succeed():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await retry_with_backoff(succeed, max_attempts=3)

        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_linear_delays(self):
        """Linear backoff waits attempt * base_delay."""
        from authlife_core.retry import retry_with_backoff

        delays = []
        call_count = 0

        async def fake_sleep(delay):
            delays.append(delay)

        async def fail_twice():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Temporary failure")
            return "success"

        result = await retry_with_backoff(
            fail_twice,
            max_attempts=3,
            base_delay=0.5,
            linear=True,
            jitter=False,
            sleep=fake_sleep,
        )

        assert result == "success"
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_retry_exhausted(self):
        """Should raise after max attempts, keeping the last error."""
        from authlife_core.retry import retry_with_backoff, RetryExhausted

        async def always_fail():
            raise ValueError("Always fails")

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_with_backoff(always_fail, max_attempts=3, base_delay=0.01)

        assert isinstance(exc_info.value.last_exception, ValueError)
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self):
        from authlife_core.retry import retry_with_backoff

        async def boom():
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_with_backoff(boom, retryable_exceptions={ValueError})

    def test_compute_delay(self):
        from authlife_core.retry import compute_delay

        assert compute_delay(3, 1.0, 60.0) == 4.0
        assert compute_delay(3, 0.5, 60.0, linear=True) == 1.5
        assert compute_delay(10, 1.0, 5.0) == 5.0

    @pytest.mark.asyncio
    async def test_decorator(self):
        from authlife_core.retry import with_retry

        calls = []

        @with_retry(max_attempts=2, base_delay=0.0)
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("once")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 2
