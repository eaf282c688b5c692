"""
Exchange Adapter Factory.

============================================================
PURPOSE
============================================================
Factory for creating exchange adapter instances.

FEATURES:
- Centralized adapter creation
- Configuration injection (explicit or from environment)
- Client injection for tests and dry runs
- Adapter registry for extension

============================================================
USAGE
============================================================
```python
# Credentials from BINANCE_API_KEY / BINANCE_API_SECRET
adapter = AdapterFactory.create("binance", currency="BTC", asset="ETH")

# Explicit config
config = AdapterConfig(currency="BTC", asset="ETH", api_key="...", api_secret="...")
adapter = AdapterFactory.create("poloniex", config=config)

# Scripted client
adapter = AdapterFactory.create("poloniex", config=config, client=MockExchangeClient())
```

============================================================
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from ..clients.base import ExchangeClient
from ..clients.binance import BinanceClient
from ..clients.poloniex import PoloniexClient
from ..config import AdapterConfig
from ..types import Pair
from .base import ExchangeAdapter
from .binance import BinanceAdapter
from .poloniex import PoloniexAdapter


logger = logging.getLogger(__name__)


# ============================================================
# EXCHANGE IDENTIFIERS
# ============================================================

class ExchangeId(Enum):
    """Supported exchange identifiers."""

    BINANCE = "binance"
    POLONIEX = "poloniex"


ClientBuilder = Callable[[AdapterConfig], ExchangeClient]


def _binance_client(config: AdapterConfig) -> ExchangeClient:
    return BinanceClient(
        Pair(config.currency, config.asset),
        api_key=config.api_key,
        api_secret=config.api_secret,
        testnet=config.testnet,
        timeout_config=config.timeout,
    )


def _poloniex_client(config: AdapterConfig) -> ExchangeClient:
    return PoloniexClient(
        Pair(config.currency, config.asset),
        api_key=config.api_key,
        api_secret=config.api_secret,
        timeout_config=config.timeout,
    )


# ============================================================
# ADAPTER FACTORY
# ============================================================

class AdapterFactory:
    """
    Factory for creating exchange adapters.

    Built-in exchanges are pre-registered; register() adds or
    replaces entries.
    """

    _registry: Dict[str, Type[ExchangeAdapter]] = {
        ExchangeId.BINANCE.value: BinanceAdapter,
        ExchangeId.POLONIEX.value: PoloniexAdapter,
    }

    _client_builders: Dict[str, ClientBuilder] = {
        ExchangeId.BINANCE.value: _binance_client,
        ExchangeId.POLONIEX.value: _poloniex_client,
    }

    @classmethod
    def register(
        cls,
        exchange_id: str,
        adapter_class: Type[ExchangeAdapter],
        client_builder: ClientBuilder = None,
    ) -> None:
        """
        Register an adapter class and how to build its client.

        Args:
            exchange_id: Exchange identifier
            adapter_class: Adapter class to register
            client_builder: Builds the HTTP client from config
        """
        exchange_id = exchange_id.lower()
        cls._registry[exchange_id] = adapter_class
        if client_builder:
            cls._client_builders[exchange_id] = client_builder

    @classmethod
    def unregister(cls, exchange_id: str) -> None:
        """Unregister an adapter."""
        exchange_id = exchange_id.lower()
        cls._registry.pop(exchange_id, None)
        cls._client_builders.pop(exchange_id, None)

    @classmethod
    def create(
        cls,
        exchange_id: str,
        config: AdapterConfig = None,
        client: Optional[ExchangeClient] = None,
        currency: str = "",
        asset: str = "",
        testnet: bool = False,
        **kwargs: Any,
    ) -> ExchangeAdapter:
        """
        Create an exchange adapter.

        Args:
            exchange_id: Exchange identifier
            config: Adapter configuration (default: from environment)
            client: Client to use instead of the exchange's HTTP client
            currency: Quote currency, when config is not given
            asset: Traded asset, when config is not given
            testnet: Use testnet, when config is not given
            **kwargs: Passed to the adapter (sleep, clock, now)

        Returns:
            ExchangeAdapter instance

        Raises:
            ValueError: If exchange not supported
        """
        exchange_id = exchange_id.lower()

        adapter_class = cls._registry.get(exchange_id)
        if adapter_class is None:
            raise ValueError(f"Unsupported exchange: {exchange_id}")

        if config is None:
            config = AdapterConfig.from_env(exchange_id, currency, asset, testnet=testnet)

        if client is None:
            builder = cls._client_builders.get(exchange_id)
            if builder is None:
                raise ValueError(f"No client available for {exchange_id}")
            client = builder(config)

        logger.info(f"Creating {exchange_id} adapter for {config.currency}/{config.asset}")
        return adapter_class(config, client, **kwargs)

    @classmethod
    def list_supported(cls) -> List[str]:
        """List supported exchanges."""
        return sorted(cls._registry.keys())


def create_adapter(
    exchange_id: str,
    config: AdapterConfig = None,
    **kwargs: Any,
) -> ExchangeAdapter:
    """Convenience wrapper around AdapterFactory.create."""
    return AdapterFactory.create(exchange_id, config=config, **kwargs)
