"""
Exchange Bridge - Binance Spot Adapter.

============================================================
PURPOSE
============================================================
Binance variant of the exchange adapter.

DIFFERENCES FROM THE DEFAULT RESOLUTION:
- Order status comes from an explicit status string
  (NEW / PARTIALLY_FILLED / FILLED / CANCELED / ...)
- Market increments are loaded from exchangeInfo filters
- Cancelling an unknown order means it already filled

============================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..classifier import BINANCE_OVERRIDES, BINANCE_SIGNATURES, OutcomeClassifier
from ..clients.binance import binance_symbol
from ..markets import DEFAULT_STEP, MarketDescriptor, to_decimal
from ..outcome import OperationKind, OutcomeMarker, Success
from ..resolver import resolve_status, unfilled_status
from ..types import (
    Fill,
    OpenOrder,
    OrderSide,
    PortfolioEntry,
    Result,
    Ticker,
    Trade,
)
from .base import ExchangeAdapter, ExchangeCapabilities


logger = logging.getLogger(__name__)


DEFAULT_FEE = Decimal("0.001")
"""0.1%, used when the account reports no commission."""

BASIS_POINTS = Decimal("10000")


def _from_millis(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class BinanceAdapter(ExchangeAdapter):
    """
    Binance spot exchange adapter.

    Requires a client exposing query_order and fetch_exchange_info
    on top of the ExchangeClient interface.
    """

    capabilities = ExchangeCapabilities(
        name="Binance",
        slug="binance",
        markets=(
            ("BTC", "ETH"),
            ("BTC", "BNB"),
            ("BTC", "LTC"),
            ("BTC", "XRP"),
            ("BTC", "ADA"),
            ("ETH", "BNB"),
            ("ETH", "LTC"),
            ("USDT", "BTC"),
            ("USDT", "ETH"),
            ("USDT", "BNB"),
            ("USDT", "LTC"),
        ),
    )

    def build_classifier(self) -> OutcomeClassifier:
        return OutcomeClassifier(BINANCE_SIGNATURES, BINANCE_OVERRIDES)

    @property
    def symbol(self) -> str:
        return binance_symbol(self._pair)

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the client and load the pair's trading rules.

        Raises:
            ExchangeException: If exchangeInfo cannot be loaded
        """
        await super().connect()
        (await self.load_market()).unwrap()

    async def load_market(self) -> Result:
        """Load increments and minimums from exchangeInfo: Result[MarketDescriptor]."""
        result = await self._runner.run(
            OperationKind.MARKET_INFO,
            self._client.fetch_exchange_info,
            lambda s: self.parse_market(s.payload),
        )
        if result.ok:
            self._market = result.value
            logger.info(
                f"Loaded {self.symbol} rules: price step {self._market.price_step}, "
                f"amount step {self._market.amount_step}, min notional {self._market.min_notional}"
            )
        return result

    def parse_market(self, body: Dict[str, Any]) -> MarketDescriptor:
        info = next((s for s in body["symbols"] if s["symbol"] == self.symbol), None)
        if info is None:
            raise ValueError(f"Symbol {self.symbol} not listed in exchangeInfo")

        filters = {f["filterType"]: f for f in info.get("filters", [])}
        price_filter = filters.get("PRICE_FILTER", {})
        lot_size = filters.get("LOT_SIZE", {})
        notional = filters.get("MIN_NOTIONAL") or filters.get("NOTIONAL") or {}

        return MarketDescriptor(
            pair=self._pair,
            amount_step=to_decimal(lot_size.get("stepSize", DEFAULT_STEP)),
            price_step=to_decimal(price_filter.get("tickSize", DEFAULT_STEP)),
            min_amount=to_decimal(lot_size.get("minQty", "0")),
            min_price=to_decimal(price_filter.get("minPrice", "0")),
            min_notional=to_decimal(notional.get("minNotional", "0")),
        )

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def check_order(self, order_id: str) -> Result:
        """Order status from the exchange's status string: Result[OrderStatus]."""

        def parse(success: Success):
            if success.marker == OutcomeMarker.UNFILLED:
                return unfilled_status()
            body = success.payload
            return resolve_status(body["status"], to_decimal(body.get("executedQty", "0")))

        return await self._runner.run(
            OperationKind.CHECK_ORDER,
            lambda: self._client.query_order(order_id),
            parse,
        )

    # --------------------------------------------------------
    # PARSERS
    # --------------------------------------------------------

    def parse_ticker(self, body: Dict[str, Any]) -> Ticker:
        return Ticker(bid=to_decimal(body["bidPrice"]), ask=to_decimal(body["askPrice"]))

    def parse_portfolio(self, body: Dict[str, Any]) -> List[PortfolioEntry]:
        free = {b["asset"]: to_decimal(b["free"]) for b in body["balances"]}
        return [
            PortfolioEntry(name=name, amount=free.get(name, Decimal("0")))
            for name in self._pair.as_tuple()
        ]

    def parse_fee(self, body: Dict[str, Any]) -> Decimal:
        commission = body.get("makerCommission")
        if commission is None:
            return DEFAULT_FEE
        return to_decimal(commission) / BASIS_POINTS

    def parse_trades(self, body: List[Dict[str, Any]], since: Optional[datetime] = None) -> List[Trade]:
        return [
            Trade(
                tid=t["a"],
                date=int(t["T"]) // 1000,
                price=to_decimal(t["p"]),
                amount=to_decimal(t["q"]),
            )
            for t in body
        ]

    def parse_order_id(self, body: Dict[str, Any]) -> str:
        return str(body["orderId"])

    def parse_open_orders(self, body: List[Dict[str, Any]]) -> List[OpenOrder]:
        orders = []
        for o in body:
            amount = to_decimal(o["origQty"])
            orders.append(OpenOrder(
                order_id=str(o["orderId"]),
                side=OrderSide(o["side"].lower()),
                price=to_decimal(o["price"]),
                amount=amount,
                remaining=amount - to_decimal(o.get("executedQty", "0")),
                created_at=_from_millis(o["time"]) if "time" in o else None,
            ))
        return orders

    def parse_fills(self, order_id: str, body: List[Dict[str, Any]]) -> List[Fill]:
        return [
            Fill(
                amount=to_decimal(t["qty"]),
                rate=to_decimal(t["price"]),
                date=_from_millis(t["time"]),
                fee=to_decimal(t.get("commission", "0")),
                fee_asset=t.get("commissionAsset"),
            )
            for t in body
            if str(t["orderId"]) == str(order_id)
        ]
