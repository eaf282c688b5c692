"""
Reconciliation Tests.

============================================================
PURPOSE
============================================================
Tests for settling ambiguous placements and cancellations.

TEST CATEGORIES:
- Recent order matching (window, side, price, amount)
- Placement reconciliation flow
- Cancel resolution

============================================================
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from exchange_bridge.config import ReconciliationConfig, RetryPolicy
from exchange_bridge.errors import ErrorCategory
from exchange_bridge.metrics import MetricType, OperationMetrics
from exchange_bridge.outcome import (
    AmbiguousResult,
    FatalError,
    OutcomeMarker,
    RetryableError,
    Success,
)
from exchange_bridge.reconciliation import (
    CancelReconciler,
    PlacementIntent,
    PlacementReconciler,
)
from exchange_bridge.retry import RetryScheduler
from exchange_bridge.types import CancelResult, OpenOrder, OrderSide


NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
LOOKUP = RetryPolicy(max_attempts=3, factor=1.5, min_delay_seconds=1.0, max_delay_seconds=10.0)
INTENT = PlacementIntent(OrderSide.BUY, Decimal("1"), Decimal("0.05"))


def recent(order_id, seconds_ago, side=OrderSide.BUY, price="0.05", amount="1"):
    return OpenOrder(
        order_id=order_id,
        side=side,
        price=Decimal(price),
        amount=Decimal(amount),
        remaining=Decimal(amount),
        created_at=NOW - timedelta(seconds=seconds_ago),
    )


def make_reconciler(config=None, metrics=None):
    sleep = AsyncMock()
    reconciler = PlacementReconciler(
        config or ReconciliationConfig(),
        RetryScheduler(sleep=sleep),
        LOOKUP,
        sleep=sleep,
        now=lambda: NOW,
        metrics=metrics,
    )
    return reconciler, sleep


# ============================================================
# RECENT ORDER MATCHING
# ============================================================

class TestFindRecent:
    """Tests for matching a recent open order to an intent."""

    def test_matches_within_window(self):
        """Test an order from seconds ago matches."""
        reconciler, _ = make_reconciler()

        found = reconciler.find_recent([recent("1", 30)], INTENT)

        assert found.order_id == "1"

    def test_outside_window(self):
        """Test older orders are not the placed one."""
        reconciler, _ = make_reconciler()

        assert reconciler.find_recent([recent("1", 300)], INTENT) is None

    def test_clock_skew_widens_window(self):
        """Test the skew allowance extends the window."""
        reconciler, _ = make_reconciler(ReconciliationConfig(recency_window_seconds=120, clock_skew_seconds=10))

        assert reconciler.find_recent([recent("1", 125)], INTENT) is not None

    def test_side_must_match(self):
        """Test opposite-side orders are ignored."""
        reconciler, _ = make_reconciler()

        assert reconciler.find_recent([recent("1", 10, side=OrderSide.SELL)], INTENT) is None

    def test_unknown_side_matches(self):
        """Test listings without a side still match."""
        reconciler, _ = make_reconciler()

        assert reconciler.find_recent([recent("1", 10, side=None)], INTENT) is not None

    def test_price_must_match(self):
        """Test different prices are ignored unless disabled."""
        reconciler, _ = make_reconciler()
        lenient, _ = make_reconciler(ReconciliationConfig(match_price=False))
        orders = [recent("1", 10, price="0.06")]

        assert reconciler.find_recent(orders, INTENT) is None
        assert lenient.find_recent(orders, INTENT) is not None

    def test_prefers_exact_amount_then_most_recent(self):
        """Test tie-breaking among candidates."""
        reconciler, _ = make_reconciler()
        orders = [
            recent("old-exact", 60),
            recent("newer-other", 5, amount="2"),
            recent("new-exact", 20),
        ]

        assert reconciler.find_recent(orders, INTENT).order_id == "new-exact"

    def test_orders_without_timestamp_ignored(self):
        """Test undated orders cannot be proven recent."""
        reconciler, _ = make_reconciler()
        order = recent("1", 10)
        order.created_at = None

        assert reconciler.find_recent([order], INTENT) is None


# ============================================================
# PLACEMENT RECONCILIATION
# ============================================================

class TestPlacementReconciler:
    """Tests for the reconciliation flow."""

    @pytest.mark.asyncio
    async def test_found_order_is_success(self):
        """Test a matching recent order resolves the placement."""
        metrics = OperationMetrics("test")
        reconciler, sleep = make_reconciler(metrics=metrics)
        lookup = AsyncMock(return_value=Success([recent("42", 15)]))

        outcome = await reconciler.reconcile(AmbiguousResult("ETIMEDOUT"), INTENT, lookup)

        assert outcome == Success("42")
        sleep.assert_any_await(2.0)
        assert metrics.count("order", MetricType.RECONCILED) == 1

    @pytest.mark.asyncio
    async def test_nothing_found_keeps_ambiguity(self):
        """Test the original ambiguous result surfaces when nothing matches."""
        metrics = OperationMetrics("test")
        reconciler, _ = make_reconciler(metrics=metrics)
        ambiguous = AmbiguousResult("ETIMEDOUT")

        outcome = await reconciler.reconcile(ambiguous, INTENT, AsyncMock(return_value=Success([])))

        assert outcome is ambiguous
        assert metrics.count("order", MetricType.RECONCILE_MISSED) == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_is_not_absence(self):
        """Test a failed look-up stays ambiguous."""
        reconciler, _ = make_reconciler()
        lookup = AsyncMock(return_value=RetryableError("ECONNRESET"))

        outcome = await reconciler.reconcile(AmbiguousResult("ETIMEDOUT"), INTENT, lookup)

        assert isinstance(outcome, AmbiguousResult)
        assert outcome.category == ErrorCategory.RECONCILIATION
        assert "ECONNRESET" in outcome.reason
        assert lookup.await_count == LOOKUP.max_attempts

    @pytest.mark.asyncio
    async def test_lookup_fatal_is_not_absence(self):
        """Test a fatal look-up error stays ambiguous."""
        reconciler, _ = make_reconciler()
        lookup = AsyncMock(return_value=FatalError("Invalid API key"))

        outcome = await reconciler.reconcile(AmbiguousResult("ETIMEDOUT"), INTENT, lookup)

        assert isinstance(outcome, AmbiguousResult)
        assert lookup.await_count == 1


# ============================================================
# CANCEL RESOLUTION
# ============================================================

class TestCancelReconciler:
    """Tests for cancel outcome mapping."""

    def test_successful_cancel(self):
        """Test a plain cancel needs no fill accounting."""
        assert CancelReconciler.resolve(Success({"success": 1})) == Success(CancelResult(filled=False))

    def test_already_filled(self):
        """Test an already-filled order is reported as filled."""
        outcome = CancelReconciler.resolve(Success({"filled": True}, OutcomeMarker.ALREADY_FILLED))

        assert outcome == Success(CancelResult(filled=True))

    def test_failure_passes_through(self):
        """Test real failures propagate."""
        failure = FatalError("Invalid API key")

        assert CancelReconciler.resolve(failure) is failure
