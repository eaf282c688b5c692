"""
Exchange Bridge - Exchange Adapter Base.

============================================================
PURPOSE
============================================================
Exchange-agnostic trading interface exposed to the strategy
layer, with retry, classification and reconciliation shared by
every exchange variant.

DESIGN PRINCIPLES:
- Variants only translate bodies; they never retry on their own
- Every exchange-facing operation returns a Result
- Local objects are views; the exchange is authoritative

============================================================
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..classifier import OutcomeClassifier
from ..clients.base import ExchangeClient
from ..config import AdapterConfig
from ..errors import ErrorCategory, ResponseError, TransportError
from ..markets import MarketDescriptor
from ..metrics import OperationMetrics
from ..outcome import (
    AmbiguousResult,
    FatalError,
    OperationKind,
    Outcome,
    OutcomeMarker,
    Success,
    to_exchange_error,
)
from ..reconciliation import CancelReconciler, PlacementIntent, PlacementReconciler
from ..resolver import apply, resolve_open_orders, summarize_fills, unfilled_status
from ..retry import Attempt, RetryScheduler
from ..types import (
    Fill,
    OpenOrder,
    Order,
    OrderSide,
    Pair,
    PortfolioEntry,
    Result,
    Ticker,
    Trade,
)


logger = logging.getLogger(__name__)


Call = Callable[[], Awaitable[Any]]
Parser = Callable[[Success], Any]

# Raised by parsers on bodies that do not have the expected shape
PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, ArithmeticError)


# ============================================================
# CAPABILITIES
# ============================================================

@dataclass(frozen=True)
class ExchangeCapabilities:
    """Static description of an exchange variant."""

    name: str
    slug: str
    markets: Tuple[Tuple[str, str], ...]
    """Supported (currency, asset) pairs."""

    requires: Tuple[str, ...] = ("key", "secret")
    """Credentials needed for trading."""

    tradable: bool = True
    provides_history: str = "date"

    @property
    def currencies(self) -> List[str]:
        return sorted({currency for currency, _ in self.markets})

    @property
    def assets(self) -> List[str]:
        return sorted({asset for _, asset in self.markets})

    def supports(self, pair: Pair) -> bool:
        return pair.as_tuple() in self.markets

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "slug": self.slug,
            "currencies": self.currencies,
            "assets": self.assets,
            "markets": [list(market) for market in self.markets],
            "requires": list(self.requires),
            "tradable": self.tradable,
            "provides_history": self.provides_history,
        }


# ============================================================
# OPERATION RUNNER
# ============================================================

class OperationRunner:
    """
    Executes one exchange operation end to end.

    call -> classify -> parse -> retry per policy -> Result
    """

    def __init__(
        self,
        exchange_id: str,
        classifier: OutcomeClassifier,
        scheduler: RetryScheduler,
        config: AdapterConfig,
        metrics: Optional[OperationMetrics] = None,
    ):
        self._exchange_id = exchange_id
        self._classifier = classifier
        self._scheduler = scheduler
        self._config = config
        self._metrics = metrics

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    def attempt_for(
        self,
        kind: OperationKind,
        call: Call,
        parse: Optional[Parser] = None,
    ) -> Attempt:
        """
        Wrap a raw client call into a classified attempt.

        A successful body that cannot be parsed is a FatalError.
        """

        async def attempt() -> Outcome:
            started = time.monotonic()
            try:
                body = await call()
            except TransportError as e:
                outcome = self._classifier.classify(kind, e, e.body)
            else:
                outcome = self._classifier.classify(kind, None, body)
            finally:
                if self._metrics is not None:
                    self._metrics.record_latency(kind.value, (time.monotonic() - started) * 1000)

            if not isinstance(outcome, Success) or parse is None:
                return outcome

            try:
                return Success(parse(outcome), outcome.marker)
            except ResponseError as e:
                logger.error(f"{self._exchange_id}.{kind.value}: {e}")
                return FatalError(str(e), ErrorCategory.EXCHANGE_ERROR)
            except PARSE_ERRORS as e:
                logger.error(f"{self._exchange_id}.{kind.value}: unexpected response: {e!r}")
                return FatalError(
                    f"Unexpected response: {e!r}",
                    ErrorCategory.EXCHANGE_ERROR,
                )

        return attempt

    async def run(
        self,
        kind: OperationKind,
        call: Call,
        parse: Optional[Parser] = None,
        on_ambiguous: Optional[Callable[[AmbiguousResult], Awaitable[Outcome]]] = None,
        resolve: Optional[Callable[[Outcome], Outcome]] = None,
    ) -> Result:
        """
        Run an operation under its configured retry policy.

        Args:
            kind: Operation kind (selects policy and overrides)
            call: Raw client call
            parse: Turns a Success into the canonical value
            on_ambiguous: Reconciliation for ambiguous outcomes
            resolve: Post-processing of the final outcome

        Returns:
            Result holding the parsed value or an ExchangeError
        """
        final = await self._scheduler.run(
            self._config.policy_for(kind),
            self.attempt_for(kind, call, parse),
            on_ambiguous=on_ambiguous,
            operation=kind.value,
        )

        outcome = resolve(final.outcome) if resolve is not None else final.outcome

        if isinstance(outcome, Success):
            return Result.success(outcome.payload)

        return Result.failure(
            to_exchange_error(outcome, kind, self._exchange_id, final.attempts)
        )


# ============================================================
# EXCHANGE ADAPTER
# ============================================================

class ExchangeAdapter(ABC):
    """
    Abstract exchange adapter.

    One instance serves one pair with one set of credentials.
    Concurrent operations are independent; serializing a single
    trading intent is the caller's job.

    Implementations:
    - BinanceAdapter: Binance spot
    - PoloniexAdapter: Poloniex
    """

    capabilities: ExchangeCapabilities

    def __init__(
        self,
        config: AdapterConfig,
        client: ExchangeClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = None,
    ):
        """
        Initialize adapter.

        Args:
            config: Adapter configuration
            client: Raw exchange client
            sleep: Coroutine used for backoff and reconciliation waits
            clock: Monotonic clock for elapsed-time budgets
            now: Wall clock used to judge order recency
        """
        if not config.currency or not config.asset:
            raise ValueError("Both currency and asset are required")

        self._config = config
        self._client = client
        self._pair = Pair(config.currency.upper(), config.asset.upper())
        self._metrics = OperationMetrics(self.exchange_id)

        scheduler = RetryScheduler(sleep=sleep, clock=clock, metrics=self._metrics)
        self._runner = OperationRunner(
            self.exchange_id,
            self.build_classifier(),
            scheduler,
            config,
            self._metrics,
        )
        self._placement = PlacementReconciler(
            config.reconciliation,
            scheduler,
            config.policy_for(OperationKind.LOOKUP),
            sleep=sleep,
            now=now,
            metrics=self._metrics,
        )
        self._market = self.default_market()

        if not self.capabilities.supports(self._pair):
            logger.warning(f"{self.exchange_id}: pair {self._pair} is not a known market")

    # --------------------------------------------------------
    # IDENTITY
    # --------------------------------------------------------

    @property
    def exchange_id(self) -> str:
        return self.capabilities.slug

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def market(self) -> MarketDescriptor:
        return self._market

    @property
    def metrics(self) -> OperationMetrics:
        return self._metrics

    @property
    def client(self) -> ExchangeClient:
        return self._client

    @classmethod
    def get_capabilities(cls) -> Dict[str, Any]:
        """Static descriptor of the exchange."""
        return cls.capabilities.to_dict()

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open the client."""
        await self._client.connect()
        logger.info(f"Connected to {self.exchange_id} for {self._pair}")

    async def disconnect(self) -> None:
        """Close the client."""
        await self._client.disconnect()
        logger.info(f"Disconnected from {self.exchange_id}")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # --------------------------------------------------------
    # MARKET DATA AND ACCOUNT
    # --------------------------------------------------------

    async def get_ticker(self) -> Result:
        """Best bid/ask: Result[Ticker]."""
        return await self._runner.run(
            OperationKind.TICKER,
            self._client.fetch_ticker,
            lambda s: self.parse_ticker(s.payload),
        )

    async def get_portfolio(self) -> Result:
        """Free balances of currency and asset: Result[List[PortfolioEntry]]."""
        return await self._runner.run(
            OperationKind.PORTFOLIO,
            self._client.fetch_balances,
            lambda s: self.parse_portfolio(s.payload),
        )

    async def get_fee(self) -> Result:
        """Maker fee as a fraction: Result[Decimal]."""
        return await self._runner.run(
            OperationKind.FEE,
            self._client.fetch_fee_info,
            lambda s: self.parse_fee(s.payload),
        )

    async def get_trades(self, since: Optional[datetime] = None, descending: bool = False) -> Result:
        """
        Public trades of the pair: Result[List[Trade]].

        Args:
            since: Only trades from this time on
            descending: Newest first instead of oldest first
        """

        def parse(success: Success) -> List[Trade]:
            trades = self.parse_trades(success.payload, since)
            if descending:
                trades.reverse()
            return trades

        return await self._runner.run(
            OperationKind.TRADES,
            lambda: self._client.fetch_trade_history(since),
            parse,
        )

    # --------------------------------------------------------
    # ROUNDING AND VALIDATION
    # --------------------------------------------------------

    def round_amount(self, amount: Any) -> Decimal:
        return self._market.round_amount(amount)

    def round_price(self, price: Any) -> Decimal:
        return self._market.round_price(price)

    def is_valid_price(self, price: Any) -> bool:
        return self._market.is_valid_price(price)

    def is_valid_lot(self, price: Any, amount: Any) -> bool:
        return self._market.is_valid_lot(price, amount)

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def buy(self, amount: Any, price: Any) -> Result:
        """Place a limit buy: Result[order_id]."""
        return await self._place(OrderSide.BUY, amount, price)

    async def sell(self, amount: Any, price: Any) -> Result:
        """Place a limit sell: Result[order_id]."""
        return await self._place(OrderSide.SELL, amount, price)

    async def _place(self, side: OrderSide, amount: Any, price: Any) -> Result:
        try:
            intent = PlacementIntent(side, self.round_amount(amount), self.round_price(price))
        except (ArithmeticError, ValueError) as e:
            return self._rejected(f"Invalid amount or price: {amount!r} @ {price!r} ({e!r})")

        if intent.amount <= 0 or intent.price <= 0:
            return self._rejected(
                f"Amount and price must be positive after rounding: {intent.amount} @ {intent.price}"
            )

        logger.info(f"{self.exchange_id}: {side.value} {intent.amount} {self._pair.asset} @ {intent.price}")

        lookup = self._runner.attempt_for(
            OperationKind.LOOKUP,
            self._client.fetch_open_orders,
            lambda s: self.parse_open_orders(s.payload),
        )

        async def reconcile(ambiguous: AmbiguousResult) -> Outcome:
            return await self._placement.reconcile(ambiguous, intent, lookup)

        return await self._runner.run(
            OperationKind.PLACE_ORDER,
            lambda: self._client.place_order(side, intent.amount, intent.price),
            lambda s: self.parse_order_id(s.payload),
            on_ambiguous=reconcile,
        )

    def _rejected(self, reason: str) -> Result:
        """Placement refused locally; nothing was sent."""
        logger.error(f"{self.exchange_id}: {reason}")
        return Result.failure(to_exchange_error(
            FatalError(reason, ErrorCategory.INVALID_REQUEST),
            OperationKind.PLACE_ORDER,
            self.exchange_id,
        ))

    async def check_order(self, order_id: str) -> Result:
        """
        Whether an order is still open: Result[OrderStatus].

        Default resolution: an order absent from the open-order
        listing has been filled.
        """

        def parse(success: Success):
            if success.marker == OutcomeMarker.UNFILLED:
                return unfilled_status()
            return resolve_open_orders(order_id, self.parse_open_orders(success.payload))

        return await self._runner.run(
            OperationKind.CHECK_ORDER,
            self._client.fetch_open_orders,
            parse,
        )

    async def get_order(self, order_id: str) -> Result:
        """Volume-weighted fill summary of an order: Result[FillSummary]."""

        def parse(success: Success):
            if success.marker == OutcomeMarker.UNFILLED:
                return summarize_fills([])
            return summarize_fills(self.parse_fills(order_id, success.payload))

        return await self._runner.run(
            OperationKind.GET_ORDER,
            lambda: self._client.fetch_order_trades(order_id),
            parse,
        )

    async def cancel_order(self, order_id: str) -> Result:
        """Cancel an order: Result[CancelResult]."""
        return await self._runner.run(
            OperationKind.CANCEL_ORDER,
            lambda: self._client.cancel_order(order_id),
            resolve=CancelReconciler.resolve,
        )

    async def refresh(self, order: Order) -> Result:
        """Re-check an order on the exchange and apply its status: Result[Order]."""
        if order.is_done:
            return Result.success(order)

        result = await self.check_order(order.order_id)
        if not result.ok:
            return result
        return Result.success(apply(order, result.value))

    # --------------------------------------------------------
    # VARIANT HOOKS
    # --------------------------------------------------------

    def build_classifier(self) -> OutcomeClassifier:
        return OutcomeClassifier()

    def default_market(self) -> MarketDescriptor:
        return MarketDescriptor(self._pair)

    @abstractmethod
    def parse_ticker(self, body: Any) -> Ticker:
        pass

    @abstractmethod
    def parse_portfolio(self, body: Any) -> List[PortfolioEntry]:
        pass

    @abstractmethod
    def parse_fee(self, body: Any) -> Decimal:
        pass

    @abstractmethod
    def parse_trades(self, body: Any, since: Optional[datetime] = None) -> List[Trade]:
        """
        Trades oldest first.

        Raises:
            ResponseError: If the history for `since` is incomplete
        """
        pass

    @abstractmethod
    def parse_order_id(self, body: Any) -> str:
        pass

    @abstractmethod
    def parse_open_orders(self, body: Any) -> List[OpenOrder]:
        pass

    @abstractmethod
    def parse_fills(self, order_id: str, body: Any) -> List[Fill]:
        pass
