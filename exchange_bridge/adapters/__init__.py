"""
Exchange Bridge - Exchange Adapters.

Per-exchange variants of the trading interface.
"""

from .base import ExchangeAdapter, ExchangeCapabilities, OperationRunner
from .binance import BinanceAdapter
from .poloniex import PoloniexAdapter
from .factory import AdapterFactory, ExchangeId, create_adapter


__all__ = [
    "ExchangeAdapter",
    "ExchangeCapabilities",
    "OperationRunner",
    "BinanceAdapter",
    "PoloniexAdapter",
    "AdapterFactory",
    "ExchangeId",
    "create_adapter",
]
