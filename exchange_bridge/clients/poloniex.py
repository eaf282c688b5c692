"""
Exchange Bridge - Poloniex Client.

============================================================
PURPOSE
============================================================
Raw transport for the Poloniex legacy trading API.

- Private commands POSTed to /tradingApi, signed with
  HMAC-SHA512 over the form body (Key / Sign headers)
- Strictly increasing nonce per client
- Pair string: currency_asset (e.g. BTC_ETH)

Errors come back as {"error": "..."} with HTTP 200 or 422, and
the Cloudflare challenge page comes back as HTML.

============================================================
"""

import hashlib
import hmac
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..config import TimeoutConfig
from ..types import OrderSide, Pair
from .http import HttpExchangeClient


logger = logging.getLogger(__name__)


POLONIEX_URL = "https://poloniex.com"


def poloniex_pair(pair: Pair) -> str:
    return f"{pair.currency}_{pair.asset}".upper()


class PoloniexClient(HttpExchangeClient):
    """Poloniex trading API client for one pair."""

    def __init__(
        self,
        pair: Pair,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_config: Optional[TimeoutConfig] = None,
        base_url: str = POLONIEX_URL,
    ):
        self._pair = pair
        self._currency_pair = poloniex_pair(pair)
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self._base_url = base_url
        self._last_nonce = 0
        super().__init__(timeout_config)

    @property
    def exchange_id(self) -> str:
        return "poloniex"

    @property
    def currency_pair(self) -> str:
        return self._currency_pair

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_ticker(self) -> Any:
        return await self._public("returnTicker")

    async def fetch_balances(self) -> Any:
        return await self._private("returnBalances")

    async def fetch_fee_info(self) -> Any:
        return await self._private("returnFeeInfo")

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def place_order(self, side: OrderSide, amount: Decimal, price: Decimal) -> Any:
        return await self._private(
            side.value,
            currencyPair=self._currency_pair,
            rate=str(price),
            amount=str(amount),
        )

    async def fetch_open_orders(self) -> Any:
        return await self._private("returnOpenOrders", currencyPair=self._currency_pair)

    async def fetch_order_trades(self, order_id: str) -> Any:
        return await self._private("returnOrderTrades", orderNumber=order_id)

    async def cancel_order(self, order_id: str) -> Any:
        return await self._private("cancelOrder", orderNumber=order_id)

    # --------------------------------------------------------
    # PUBLIC MARKET DATA
    # --------------------------------------------------------

    async def fetch_trade_history(self, since: Optional[datetime] = None) -> Any:
        params = {"currencyPair": self._currency_pair}
        if since is not None:
            params["start"] = int(since.timestamp())
        return await self._public("returnTradeHistory", **params)

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    async def _public(self, command: str, **params: Any) -> Any:
        query = {"command": command, **params}
        return await self._request("GET", f"{self._base_url}/public", params=query)

    async def _private(self, command: str, **params: Any) -> Any:
        data = {key: str(value) for key, value in params.items()}
        data = {"command": command, "nonce": str(self._next_nonce()), **data}
        headers = {
            "Key": self._api_key,
            "Sign": self._sign(data),
        }
        return await self._request("POST", f"{self._base_url}/tradingApi", data=data, headers=headers)

    def _next_nonce(self) -> int:
        # Concurrent calls in the same millisecond still get distinct nonces
        nonce = max(int(time.time() * 1000), self._last_nonce + 1)
        self._last_nonce = nonce
        return nonce

    def _sign(self, data: Dict[str, Any]) -> str:
        return hmac.new(
            self._api_secret.encode(),
            urlencode(data).encode(),
            hashlib.sha512,
        ).hexdigest()
