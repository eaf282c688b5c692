"""
Exchange Bridge - Retry Scheduler.

============================================================
PURPOSE
============================================================
Repeatedly invokes one exchange call until it yields a final
outcome, backing off between transient failures.

    Success          -> return immediately
    FatalError       -> return immediately, no further attempts
    RetryableError   -> wait, retry; surface last error once the
                        policy's attempt/time budget is spent
    AmbiguousResult  -> never retried as-is; handed to the
                        ambiguity handler (placement reconciler)

SAFETY CONSTRAINTS:
- Waiting suspends only the governed coroutine
- Unlimited policies are for polling only

============================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .config import RetryPolicy
from .metrics import MetricType, OperationMetrics
from .outcome import (
    Outcome,
    Success,
    FatalError,
    RetryableError,
    AmbiguousResult,
)


logger = logging.getLogger(__name__)


Attempt = Callable[[], Awaitable[Outcome]]
AmbiguityHandler = Callable[[AmbiguousResult], Awaitable[Outcome]]


@dataclass(frozen=True)
class FinalResult:
    """Outcome that ended a scheduler run."""

    outcome: Outcome
    attempts: int

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, Success)


# ============================================================
# RETRY SCHEDULER
# ============================================================

class RetryScheduler:
    """
    Drives one logical operation to a final outcome.

    Holds no per-run state; one instance may serve any number of
    concurrent runs.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[OperationMetrics] = None,
    ):
        """
        Initialize scheduler.

        Args:
            sleep: Coroutine used to wait between attempts
            clock: Monotonic clock for elapsed-time budgets
            metrics: Optional metrics collector
        """
        self._sleep = sleep
        self._clock = clock
        self._metrics = metrics

    async def run(
        self,
        policy: RetryPolicy,
        attempt: Attempt,
        on_ambiguous: Optional[AmbiguityHandler] = None,
        operation: str = "operation",
    ) -> FinalResult:
        """
        Run an attempt until it yields a final outcome.

        Args:
            policy: Retry policy for this operation
            attempt: Coroutine factory performing one classified call
            on_ambiguous: Reconciliation handler for ambiguous outcomes
            operation: Name used in logs and metrics

        Returns:
            FinalResult with the deciding outcome and the call count
        """
        delay = policy.min_delay_seconds
        started = self._clock()
        attempts = 0

        while True:
            attempts += 1
            self._count(operation, MetricType.ATTEMPT)

            outcome = await attempt()

            if isinstance(outcome, Success):
                self._count(operation, MetricType.SUCCESS)
                return FinalResult(outcome, attempts)

            if isinstance(outcome, FatalError):
                logger.error(f"{operation} failed permanently: {outcome.reason}")
                self._count(operation, MetricType.FATAL, outcome.reason)
                return FinalResult(outcome, attempts)

            if isinstance(outcome, AmbiguousResult):
                self._count(operation, MetricType.AMBIGUOUS, outcome.reason)
                if on_ambiguous is None:
                    logger.error(f"{operation} result unknown, no reconciliation available: {outcome.reason}")
                    return FinalResult(outcome, attempts)

                logger.warning(f"{operation} result unknown ({outcome.reason}), reconciling")
                resolved = await on_ambiguous(outcome)
                return FinalResult(resolved, attempts)

            if not isinstance(outcome, RetryableError):
                raise TypeError(f"Attempt returned {outcome!r}, expected an Outcome")

            if self._exhausted(policy, attempts, started, delay):
                logger.error(
                    f"{operation} gave up after {attempts} attempts: {outcome.reason}"
                )
                self._count(operation, MetricType.EXHAUSTED, outcome.reason)
                return FinalResult(outcome, attempts)

            limit = policy.max_attempts if policy.max_attempts is not None else "inf"
            logger.warning(
                f"{operation} failed (attempt {attempts}/{limit}): "
                f"{outcome.reason}. Retrying in {delay:.1f}s..."
            )
            self._count(operation, MetricType.RETRY, outcome.reason)

            await self._sleep(delay)
            delay = policy.next_delay(delay)

    def _exhausted(
        self,
        policy: RetryPolicy,
        attempts: int,
        started: float,
        delay: float,
    ) -> bool:
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            return True
        if policy.max_elapsed_seconds is not None:
            return self._clock() - started + delay > policy.max_elapsed_seconds
        return False

    def _count(self, operation: str, metric: MetricType, detail: str = None) -> None:
        if self._metrics is not None:
            self._metrics.increment(operation, metric, detail)
