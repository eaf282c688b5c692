"""
Exchange Bridge - Binance Spot Client.

============================================================
PURPOSE
============================================================
Raw transport for the Binance spot REST API.

- Request signing (HMAC-SHA256 over the query string)
- One symbol per client: asset + currency (e.g. ETHBTC)
- Bodies returned undecoded beyond JSON; API errors arrive as
  {"code": ..., "msg": ...} and are classified upstream

============================================================
"""

import hashlib
import hmac
import logging
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..config import TimeoutConfig
from ..types import OrderSide, Pair
from .http import HttpExchangeClient


logger = logging.getLogger(__name__)


BINANCE_REST_URL = "https://api.binance.com"
BINANCE_TESTNET_REST_URL = "https://testnet.binance.vision"

TRADE_HISTORY_SPAN = timedelta(hours=1)
"""aggTrades rejects startTime/endTime ranges wider than one hour."""

MY_TRADES_LIMIT = 500


def binance_symbol(pair: Pair) -> str:
    return f"{pair.asset}{pair.currency}".upper()


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class BinanceClient(HttpExchangeClient):
    """Binance spot REST client for one pair."""

    def __init__(
        self,
        pair: Pair,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        testnet: bool = False,
        timeout_config: Optional[TimeoutConfig] = None,
        recv_window_ms: int = 5000,
    ):
        """
        Initialize Binance client.

        Args:
            pair: Traded pair
            api_key: API key
            api_secret: API secret
            testnet: Use the spot testnet
            timeout_config: HTTP timeouts
            recv_window_ms: Validity window of signed requests
        """
        self._pair = pair
        self._symbol = binance_symbol(pair)
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self._rest_url = BINANCE_TESTNET_REST_URL if testnet else BINANCE_REST_URL
        self._recv_window_ms = recv_window_ms
        super().__init__(timeout_config)

    @property
    def exchange_id(self) -> str:
        return "binance"

    @property
    def symbol(self) -> str:
        return self._symbol

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_ticker(self) -> Any:
        return await self._call("GET", "/api/v3/ticker/bookTicker", {"symbol": self._symbol})

    async def fetch_balances(self) -> Any:
        return await self._call("GET", "/api/v3/account", signed=True)

    async def fetch_fee_info(self) -> Any:
        # makerCommission / takerCommission in basis points
        return await self._call("GET", "/api/v3/account", signed=True)

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def place_order(self, side: OrderSide, amount: Decimal, price: Decimal) -> Any:
        params = {
            "symbol": self._symbol,
            "side": side.value.upper(),
            "type": "LIMIT",
            "timeInForce": "GTC",
            "quantity": str(amount),
            "price": str(price),
        }
        return await self._call("POST", "/api/v3/order", params, signed=True)

    async def fetch_open_orders(self) -> Any:
        return await self._call("GET", "/api/v3/openOrders", {"symbol": self._symbol}, signed=True)

    async def query_order(self, order_id: str) -> Any:
        params = {"symbol": self._symbol, "orderId": order_id}
        return await self._call("GET", "/api/v3/order", params, signed=True)

    async def fetch_my_trades(self, order_id: Optional[str] = None, limit: int = MY_TRADES_LIMIT) -> Any:
        params = {"symbol": self._symbol, "limit": limit}
        if order_id is not None:
            params["orderId"] = order_id
        return await self._call("GET", "/api/v3/myTrades", params, signed=True)

    async def fetch_order_trades(self, order_id: str) -> Any:
        return await self.fetch_my_trades(order_id=order_id)

    async def cancel_order(self, order_id: str) -> Any:
        params = {"symbol": self._symbol, "orderId": order_id}
        return await self._call("DELETE", "/api/v3/order", params, signed=True)

    # --------------------------------------------------------
    # PUBLIC MARKET DATA
    # --------------------------------------------------------

    async def fetch_trade_history(self, since: Optional[datetime] = None) -> Any:
        params: Dict[str, Any] = {"symbol": self._symbol}
        if since is not None:
            params["startTime"] = _to_millis(since)
            params["endTime"] = _to_millis(since + TRADE_HISTORY_SPAN)
        return await self._call("GET", "/api/v3/aggTrades", params)

    async def fetch_exchange_info(self) -> Any:
        return await self._call("GET", "/api/v3/exchangeInfo", {"symbol": self._symbol})

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        signed: bool = False,
    ) -> Any:
        url = f"{self._rest_url}{path}"
        params = dict(params or {})
        headers = {}

        if signed:
            headers["X-MBX-APIKEY"] = self._api_key
            params["recvWindow"] = self._recv_window_ms
            params["timestamp"] = int(time.time() * 1000)
            params["signature"] = self._sign(params)

        params = {key: str(value) for key, value in params.items()}

        if method == "GET":
            return await self._request(method, url, params=params, headers=headers)
        return await self._request(method, url, data=params, headers=headers)

    def _sign(self, params: Dict[str, Any]) -> str:
        query_string = urlencode(params)
        return hmac.new(
            self._api_secret.encode(),
            query_string.encode(),
            hashlib.sha256,
        ).hexdigest()
