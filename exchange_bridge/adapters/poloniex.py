"""
Exchange Bridge - Poloniex Adapter.

============================================================
PURPOSE
============================================================
Poloniex variant of the exchange adapter.

NOTES:
- Order status is derived from the open-order listing; an order
  missing from it has been filled
- "Order not found" on order trades means nothing executed yet
- Cancelling an order that is gone means it already filled
- Trade history arrives newest first and is reversed
- A history request that fills a whole page is truncated and
  reported as an error

============================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..classifier import POLONIEX_SIGNATURES, OutcomeClassifier
from ..clients.poloniex import poloniex_pair
from ..errors import ResponseError
from ..markets import MarketDescriptor, to_decimal
from ..types import (
    Fill,
    OpenOrder,
    OrderSide,
    PortfolioEntry,
    Ticker,
    Trade,
)
from .base import ExchangeAdapter, ExchangeCapabilities


logger = logging.getLogger(__name__)


DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MIN_TOTAL = Decimal("0.0001")
"""Smallest order total Poloniex accepts."""

TRADE_HISTORY_LIMIT = 50000
"""Rows returned by one returnTradeHistory call at most."""


def parse_date(value: str) -> datetime:
    """Poloniex dates are UTC without a zone designator."""
    return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=timezone.utc)


class PoloniexAdapter(ExchangeAdapter):
    """Poloniex exchange adapter."""

    capabilities = ExchangeCapabilities(
        name="Poloniex",
        slug="poloniex",
        markets=(
            ("BTC", "ETH"),
            ("BTC", "LTC"),
            ("BTC", "XRP"),
            ("BTC", "XMR"),
            ("BTC", "DASH"),
            ("ETH", "ETC"),
            ("USDT", "BTC"),
            ("USDT", "ETH"),
            ("USDT", "LTC"),
        ),
    )

    def build_classifier(self) -> OutcomeClassifier:
        return OutcomeClassifier(POLONIEX_SIGNATURES)

    def default_market(self) -> MarketDescriptor:
        return MarketDescriptor(self._pair, min_notional=MIN_TOTAL)

    @property
    def currency_pair(self) -> str:
        return poloniex_pair(self._pair)

    # --------------------------------------------------------
    # PARSERS
    # --------------------------------------------------------

    def parse_ticker(self, body: Dict[str, Any]) -> Ticker:
        entry = body.get(self.currency_pair)
        if entry is None:
            raise ValueError(f"Market {self.currency_pair} not found in ticker")
        return Ticker(bid=to_decimal(entry["highestBid"]), ask=to_decimal(entry["lowestAsk"]))

    def parse_portfolio(self, body: Dict[str, Any]) -> List[PortfolioEntry]:
        return [
            PortfolioEntry(name=name, amount=to_decimal(body.get(name, "0")))
            for name in self._pair.as_tuple()
        ]

    def parse_fee(self, body: Dict[str, Any]) -> Decimal:
        return to_decimal(body["makerFee"])

    def parse_trades(self, body: List[Dict[str, Any]], since: Optional[datetime] = None) -> List[Trade]:
        if since is not None and len(body) >= TRADE_HISTORY_LIMIT:
            # The window holds more trades than one call returns
            raise ResponseError(
                f"Poloniex did not provide enough data: {len(body)} trades since "
                f"{since.isoformat()} fill a whole page, history is incomplete"
            )

        trades = [
            Trade(
                tid=t["tradeID"],
                date=int(parse_date(t["date"]).timestamp()),
                price=to_decimal(t["rate"]),
                amount=to_decimal(t["amount"]),
            )
            for t in body
        ]
        trades.reverse()
        return trades

    def parse_order_id(self, body: Dict[str, Any]) -> str:
        return str(body["orderNumber"])

    def parse_open_orders(self, body: List[Dict[str, Any]]) -> List[OpenOrder]:
        return [
            OpenOrder(
                order_id=str(o["orderNumber"]),
                side=OrderSide(o["type"]) if "type" in o else None,
                price=to_decimal(o["rate"]),
                amount=to_decimal(o.get("startingAmount", o["amount"])),
                remaining=to_decimal(o["amount"]),
                created_at=parse_date(o["date"]) if "date" in o else None,
            )
            for o in body
        ]

    def parse_fills(self, order_id: str, body: List[Dict[str, Any]]) -> List[Fill]:
        return [
            Fill(
                amount=to_decimal(t["amount"]),
                rate=to_decimal(t["rate"]),
                date=parse_date(t["date"]),
            )
            for t in body
        ]
