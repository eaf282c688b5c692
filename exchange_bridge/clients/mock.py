"""
Exchange Bridge - Mock Exchange Client.

============================================================
PURPOSE
============================================================
Scripted in-memory client for testing and dry runs.

FEATURES:
- Per-method response queues (bodies or exceptions to raise)
- Per-method default responses once a queue runs dry
- Call recording for asserting how often each call was made

============================================================
"""

import logging
from collections import defaultdict, deque
from datetime import datetime
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Tuple

from ..types import OrderSide
from .base import ExchangeClient


logger = logging.getLogger(__name__)


_NO_DEFAULT = object()


class MockExchangeClient(ExchangeClient):
    """
    Mock exchange client.

    Example:
        client = MockExchangeClient()
        client.script("place_order", TransportError("ETIMEDOUT"))
        client.set_default("fetch_open_orders", [])
    """

    def __init__(self, exchange_id: str = "mock"):
        self._exchange_id = exchange_id
        self._queues: Dict[str, Deque[Any]] = defaultdict(deque)
        self._defaults: Dict[str, Any] = {}
        self._calls: Dict[str, List[Tuple[Any, ...]]] = defaultdict(list)
        self._connected = False

    @property
    def exchange_id(self) -> str:
        return self._exchange_id

    @property
    def is_connected(self) -> bool:
        return self._connected

    # --------------------------------------------------------
    # SCRIPTING
    # --------------------------------------------------------

    def script(self, method: str, *responses: Any) -> "MockExchangeClient":
        """
        Queue responses for a method, consumed one per call.

        An Exception instance is raised instead of returned.
        """
        self._queues[method].extend(responses)
        return self

    def set_default(self, method: str, response: Any) -> "MockExchangeClient":
        """Response used once the method's queue is empty."""
        self._defaults[method] = response
        return self

    def call_count(self, method: str) -> int:
        return len(self._calls[method])

    def calls(self, method: str) -> List[Tuple[Any, ...]]:
        return list(self._calls[method])

    def reset(self) -> None:
        """Drop all scripted responses and recorded calls."""
        self._queues.clear()
        self._defaults.clear()
        self._calls.clear()

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    # --------------------------------------------------------
    # CLIENT INTERFACE
    # --------------------------------------------------------

    async def fetch_ticker(self) -> Any:
        return self._respond("fetch_ticker")

    async def fetch_balances(self) -> Any:
        return self._respond("fetch_balances")

    async def fetch_fee_info(self) -> Any:
        return self._respond("fetch_fee_info")

    async def place_order(self, side: OrderSide, amount: Decimal, price: Decimal) -> Any:
        return self._respond("place_order", side, amount, price)

    async def fetch_open_orders(self) -> Any:
        return self._respond("fetch_open_orders")

    async def fetch_order_trades(self, order_id: str) -> Any:
        return self._respond("fetch_order_trades", order_id)

    async def cancel_order(self, order_id: str) -> Any:
        return self._respond("cancel_order", order_id)

    async def fetch_trade_history(self, since: Optional[datetime] = None) -> Any:
        return self._respond("fetch_trade_history", since)

    # Binance-only calls, so the mock can stand in for BinanceClient

    async def query_order(self, order_id: str) -> Any:
        return self._respond("query_order", order_id)

    async def fetch_my_trades(self, order_id: Optional[str] = None, limit: int = 500) -> Any:
        return self._respond("fetch_my_trades", order_id, limit)

    async def fetch_exchange_info(self) -> Any:
        return self._respond("fetch_exchange_info")

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    def _respond(self, method: str, *args: Any) -> Any:
        self._calls[method].append(args)

        queue = self._queues[method]
        if queue:
            response = queue.popleft()
        else:
            response = self._defaults.get(method, _NO_DEFAULT)
            if response is _NO_DEFAULT:
                raise LookupError(f"No scripted response for {method}")

        logger.debug(f"[{self._exchange_id}] {method}{args} -> {response!r}")

        if isinstance(response, Exception):
            raise response
        return response
