"""
Exchange Bridge - Exchange Client Interface.

============================================================
PURPOSE
============================================================
The capability the resilience layer calls through: one raw
exchange call per method, uniform across exchanges.

CONTRACT:
- Methods return the decoded response body as received
  (dict, list or text); nothing is interpreted here
- Transport-level failures raise TransportError, carrying any
  body that came with them
- No retries, no classification

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..types import OrderSide


class ExchangeClient(ABC):
    """
    Abstract raw exchange client.

    Implementations:
    - BinanceClient: Binance spot REST API
    - PoloniexClient: Poloniex trading API
    - MockExchangeClient: For testing
    """

    @property
    @abstractmethod
    def exchange_id(self) -> str:
        """Get exchange identifier."""
        pass

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open underlying resources."""

    async def disconnect(self) -> None:
        """Release underlying resources."""

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    @abstractmethod
    async def fetch_ticker(self) -> Any:
        """Best bid/ask of the pair."""
        pass

    @abstractmethod
    async def fetch_balances(self) -> Any:
        """Free balances of the account."""
        pass

    @abstractmethod
    async def fetch_fee_info(self) -> Any:
        """Maker/taker fees of the account."""
        pass

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    @abstractmethod
    async def place_order(self, side: OrderSide, amount: Decimal, price: Decimal) -> Any:
        """Place a limit order on the pair."""
        pass

    @abstractmethod
    async def fetch_open_orders(self) -> Any:
        """Open orders on the pair."""
        pass

    @abstractmethod
    async def fetch_order_trades(self, order_id: str) -> Any:
        """Trades executed against an order."""
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> Any:
        """Cancel an order."""
        pass

    # --------------------------------------------------------
    # PUBLIC MARKET DATA
    # --------------------------------------------------------

    @abstractmethod
    async def fetch_trade_history(self, since: Optional[datetime] = None) -> Any:
        """Public trades of the pair, optionally starting at `since`."""
        pass
