"""
Exchange Bridge - Reconciliation.

============================================================
PURPOSE
============================================================
Re-queries live exchange state to settle results the exchange
left ambiguous.

RESPONSIBILITIES:
- Placement: after a timeout-class failure, find out whether the
  order was created anyway (no lost orders, no duplicates)
- Cancellation: tell "already filled" apart from real failures

CRITICAL INVARIANT:
    "A failed look-up is not evidence that the order is absent."
    Look-ups run under their own bounded retry policy; if they
    fail, the placement stays ambiguous.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from .config import ReconciliationConfig, RetryPolicy
from .errors import ErrorCategory
from .metrics import MetricType, OperationMetrics
from .outcome import (
    AmbiguousResult,
    Outcome,
    OutcomeMarker,
    Success,
)
from .retry import Attempt, RetryScheduler
from .types import CancelResult, OpenOrder, OrderSide


logger = logging.getLogger(__name__)


# ============================================================
# PLACEMENT RECONCILER
# ============================================================

@dataclass(frozen=True)
class PlacementIntent:
    """What the caller asked the exchange to do."""

    side: OrderSide
    amount: Decimal
    price: Decimal


class PlacementReconciler:
    """
    Settles ambiguous order placements.

    Found a matching recent order -> Success(order_id).
    Found nothing -> the original AmbiguousResult, as a failure. The
    caller decides whether to place again, accepting the residual
    risk of a false negative.
    """

    def __init__(
        self,
        config: ReconciliationConfig,
        scheduler: RetryScheduler,
        lookup_policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = None,
        metrics: Optional[OperationMetrics] = None,
    ):
        """
        Initialize reconciler.

        Args:
            config: Reconciliation configuration
            scheduler: Scheduler for the look-up calls
            lookup_policy: Bounded policy for the look-up
            sleep: Coroutine used for the initial check delay
            now: Wall clock returning aware UTC datetimes
            metrics: Optional metrics collector
        """
        self._config = config
        self._scheduler = scheduler
        self._lookup_policy = lookup_policy
        self._sleep = sleep
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._metrics = metrics

    async def reconcile(
        self,
        ambiguous: AmbiguousResult,
        intent: PlacementIntent,
        fetch_open_orders: Attempt,
    ) -> Outcome:
        """
        Look for the order an ambiguous placement may have created.

        Args:
            ambiguous: Outcome of the placement attempt
            intent: Requested side, amount and price
            fetch_open_orders: Classified attempt yielding List[OpenOrder]

        Returns:
            Success(order_id) or an AmbiguousResult
        """
        await self._sleep(self._config.check_delay_seconds)

        lookup = await self._scheduler.run(
            self._lookup_policy,
            fetch_open_orders,
            operation="findRecentOrder",
        )

        if not isinstance(lookup.outcome, Success):
            logger.error(
                f"Could not verify placement ({ambiguous.reason}): "
                f"recent order look-up failed: {lookup.outcome.reason}"
            )
            self._count(MetricType.RECONCILE_MISSED, "lookup failed")
            return AmbiguousResult(
                f"{ambiguous.reason} (recent order look-up failed: {lookup.outcome.reason})",
                ErrorCategory.RECONCILIATION,
            )

        order = self.find_recent(lookup.outcome.payload or [], intent)

        if order is None:
            logger.warning(
                f"No {intent.side.value} order at {intent.price} found within "
                f"{self._window().total_seconds():.0f}s; placement treated as failed"
            )
            self._count(MetricType.RECONCILE_MISSED, ambiguous.reason)
            return ambiguous

        logger.warning(
            f"Placement reconciled: found order {order.order_id} "
            f"created at {order.created_at.isoformat()}"
        )
        self._count(MetricType.RECONCILED, order.order_id)
        return Success(order.order_id)

    def find_recent(self, open_orders: List[OpenOrder], intent: PlacementIntent) -> Optional[OpenOrder]:
        """Most recent open order matching the intent inside the recency window."""
        threshold = self._now() - self._window()

        candidates = [
            o for o in open_orders
            if o.created_at is not None
            and o.created_at >= threshold
            and (o.side is None or o.side == intent.side)
            and (not self._config.match_price or o.price == intent.price)
        ]
        if not candidates:
            return None

        candidates.sort(key=lambda o: o.created_at, reverse=True)
        exact = [o for o in candidates if o.amount == intent.amount]
        return (exact or candidates)[0]

    def _window(self) -> timedelta:
        return timedelta(
            seconds=self._config.recency_window_seconds + self._config.clock_skew_seconds
        )

    def _count(self, metric: MetricType, detail: str) -> None:
        if self._metrics is not None:
            self._metrics.increment("order", metric, detail)


# ============================================================
# CANCEL RECONCILER
# ============================================================

class CancelReconciler:
    """
    Maps a cancel outcome to whether the order still needs fill
    accounting.
    """

    @staticmethod
    def resolve(outcome: Outcome) -> Outcome:
        """
        Args:
            outcome: Final outcome of the cancel call

        Returns:
            Success(CancelResult) or the failure unchanged
        """
        if not isinstance(outcome, Success):
            return outcome

        if outcome.marker == OutcomeMarker.ALREADY_FILLED:
            return Success(CancelResult(filled=True))

        return Success(CancelResult(filled=False))
