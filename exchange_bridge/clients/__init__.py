"""
Exchange Bridge - Exchange Clients.

Raw per-exchange transports consumed by the adapters.
"""

from .base import ExchangeClient
from .http import HttpExchangeClient
from .binance import BinanceClient
from .poloniex import PoloniexClient
from .mock import MockExchangeClient


__all__ = [
    "ExchangeClient",
    "HttpExchangeClient",
    "BinanceClient",
    "PoloniexClient",
    "MockExchangeClient",
]
