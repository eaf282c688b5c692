"""
Retry Scheduler Tests.

============================================================
PURPOSE
============================================================
Tests for driving calls to a final outcome.

TEST CATEGORIES:
- Outcome handling (success, fatal, retryable, ambiguous)
- Backoff schedule
- Attempt and elapsed-time budgets
- Policy validation

============================================================
"""

import pytest
from unittest.mock import AsyncMock, call

from exchange_bridge.config import RETRY_FOREVER, RetryPolicy
from exchange_bridge.metrics import MetricType, OperationMetrics
from exchange_bridge.outcome import (
    AmbiguousResult,
    FatalError,
    RetryableError,
    Success,
)
from exchange_bridge.retry import RetryScheduler


class ScriptedAttempt:
    """Returns the given outcomes in order, repeating the last one."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        index = min(self.calls, len(self.outcomes)) - 1
        return self.outcomes[index]


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.now += delay


FAST = RetryPolicy(max_attempts=3, factor=2.0, min_delay_seconds=1.0, max_delay_seconds=30.0)


# ============================================================
# OUTCOME HANDLING
# ============================================================

class TestOutcomeHandling:
    """Tests for how each outcome ends or continues a run."""

    @pytest.mark.asyncio
    async def test_success_returns_immediately(self):
        """Test a first-call success makes exactly one call."""
        sleep = AsyncMock()
        attempt = ScriptedAttempt(Success("ok"))

        final = await RetryScheduler(sleep=sleep).run(FAST, attempt)

        assert final.outcome == Success("ok")
        assert final.attempts == 1
        assert final.succeeded
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test N retryable failures then success make N+1 calls."""
        attempt = ScriptedAttempt(
            RetryableError("ECONNRESET"),
            RetryableError("ECONNRESET"),
            Success("ok"),
        )

        final = await RetryScheduler(sleep=AsyncMock()).run(FAST, attempt)

        assert final.outcome == Success("ok")
        assert attempt.calls == 3
        assert final.attempts == 3

    @pytest.mark.asyncio
    async def test_fatal_is_not_retried(self):
        """Test fatal errors stop the run."""
        sleep = AsyncMock()
        attempt = ScriptedAttempt(FatalError("Invalid API key"))

        final = await RetryScheduler(sleep=sleep).run(FAST, attempt)

        assert isinstance(final.outcome, FatalError)
        assert attempt.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_returns_last_error(self):
        """Test retryable failures up to the cap return the last error."""
        attempt = ScriptedAttempt(
            RetryableError("first"),
            RetryableError("second"),
            RetryableError("third"),
        )

        final = await RetryScheduler(sleep=AsyncMock()).run(FAST, attempt)

        assert final.outcome == RetryableError("third")
        assert attempt.calls == 3
        assert not final.succeeded

    @pytest.mark.asyncio
    async def test_ambiguous_without_handler_is_final(self):
        """Test ambiguous results are never blindly retried."""
        attempt = ScriptedAttempt(AmbiguousResult("ETIMEDOUT"))

        final = await RetryScheduler(sleep=AsyncMock()).run(FAST, attempt)

        assert final.outcome == AmbiguousResult("ETIMEDOUT")
        assert attempt.calls == 1

    @pytest.mark.asyncio
    async def test_ambiguous_handler_decides(self):
        """Test the reconciliation handler's outcome is final."""
        ambiguous = AmbiguousResult("ETIMEDOUT")
        handler = AsyncMock(return_value=Success("order-1"))
        attempt = ScriptedAttempt(ambiguous)

        final = await RetryScheduler(sleep=AsyncMock()).run(FAST, attempt, on_ambiguous=handler)

        assert final.outcome == Success("order-1")
        assert attempt.calls == 1
        handler.assert_awaited_once_with(ambiguous)

    @pytest.mark.asyncio
    async def test_non_outcome_raises(self):
        """Test programming errors propagate."""
        attempt = ScriptedAttempt("not an outcome")

        with pytest.raises(TypeError):
            await RetryScheduler(sleep=AsyncMock()).run(FAST, attempt)


# ============================================================
# BACKOFF AND BUDGETS
# ============================================================

class TestBackoff:
    """Tests for delays and budgets."""

    @pytest.mark.asyncio
    async def test_delay_grows_and_is_capped(self):
        """Test delay starts at the minimum, multiplies, and caps."""
        sleep = AsyncMock()
        policy = RetryPolicy(max_attempts=5, factor=2.0, min_delay_seconds=1.0, max_delay_seconds=3.0)
        attempt = ScriptedAttempt(*([RetryableError("ECONNRESET")] * 4 + [Success()]))

        await RetryScheduler(sleep=sleep).run(policy, attempt)

        assert sleep.await_args_list == [call(1.0), call(2.0), call(3.0), call(3.0)]

    @pytest.mark.asyncio
    async def test_elapsed_budget(self):
        """Test runs stop once the next wait would exceed the time budget."""
        clock = FakeClock()
        policy = RetryPolicy(
            max_attempts=None,
            factor=1.0,
            min_delay_seconds=4.0,
            max_delay_seconds=4.0,
            max_elapsed_seconds=10.0,
        )
        attempt = ScriptedAttempt(RetryableError("ECONNRESET"))

        final = await RetryScheduler(sleep=clock.sleep, clock=clock).run(policy, attempt)

        assert isinstance(final.outcome, RetryableError)
        assert attempt.calls == 3
        assert clock.now == 8.0

    @pytest.mark.asyncio
    async def test_unlimited_policy_keeps_retrying(self):
        """Test polling policies retry past the critical cap."""
        attempt = ScriptedAttempt(*([RetryableError("Response code 503")] * 15 + [Success("tick")]))

        final = await RetryScheduler(sleep=AsyncMock()).run(RETRY_FOREVER, attempt)

        assert final.outcome == Success("tick")
        assert attempt.calls == 16

    @pytest.mark.asyncio
    async def test_metrics_are_counted(self):
        """Test attempts and retries are recorded."""
        metrics = OperationMetrics("test")
        attempt = ScriptedAttempt(RetryableError("ECONNRESET"), Success())

        await RetryScheduler(sleep=AsyncMock(), metrics=metrics).run(FAST, attempt, operation="getTicker")

        assert metrics.count("getTicker", MetricType.ATTEMPT) == 2
        assert metrics.count("getTicker", MetricType.RETRY) == 1
        assert metrics.count("getTicker", MetricType.SUCCESS) == 1


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_next_delay_capped(self):
        """Test next delay never exceeds the maximum."""
        policy = RetryPolicy(factor=1.2, min_delay_seconds=1.0, max_delay_seconds=30.0)

        assert policy.next_delay(10.0) == pytest.approx(12.0)
        assert policy.next_delay(29.0) == 30.0

    def test_forever_is_unlimited(self):
        """Test the polling policy has no budget."""
        assert RETRY_FOREVER.unlimited
        assert not FAST.unlimited

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"factor": 0.5},
        {"min_delay_seconds": 5.0, "max_delay_seconds": 1.0},
    ])
    def test_invalid_policy(self, kwargs):
        """Test nonsensical policies are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
