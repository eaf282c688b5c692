"""
Binance Adapter Tests.

============================================================
PURPOSE
============================================================
Tests for the Binance variant and the adapter factory.

TEST CATEGORIES:
- Market rules loading
- Explicit order status resolution
- Binance-specific error handling
- Factory creation

============================================================
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from exchange_bridge.adapters import (
    AdapterFactory,
    BinanceAdapter,
    PoloniexAdapter,
    create_adapter,
)
from exchange_bridge.clients import BinanceClient, MockExchangeClient
from exchange_bridge.config import AdapterConfig
from exchange_bridge.errors import ErrorKind, ExchangeException, TransportError
from exchange_bridge.types import CancelResult, OrderSide, OrderState, Pair, PortfolioEntry, Ticker


NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)

EXCHANGE_INFO = {
    "timezone": "UTC",
    "symbols": [{
        "symbol": "ETHBTC",
        "status": "TRADING",
        "baseAsset": "ETH",
        "quoteAsset": "BTC",
        "filters": [
            {"filterType": "PRICE_FILTER", "minPrice": "0.00000100", "maxPrice": "922327.00000000", "tickSize": "0.00000100"},
            {"filterType": "LOT_SIZE", "minQty": "0.00010000", "maxQty": "100000.00000000", "stepSize": "0.00010000"},
            {"filterType": "NOTIONAL", "minNotional": "0.00010000"},
        ],
    }],
}


@pytest.fixture
def client():
    return MockExchangeClient("binance")


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def adapter(client, sleep):
    config = AdapterConfig(currency="BTC", asset="ETH")
    return BinanceAdapter(config, client, sleep=sleep, now=lambda: NOW)


# ============================================================
# MARKET RULES
# ============================================================

class TestMarketRules:
    """Tests for exchangeInfo loading."""

    @pytest.mark.asyncio
    async def test_connect_loads_market(self, adapter, client):
        """Test increments come from the symbol's filters."""
        client.script("fetch_exchange_info", EXCHANGE_INFO)

        await adapter.connect()

        assert client.is_connected
        assert adapter.market.price_step == Decimal("0.000001")
        assert adapter.market.amount_step == Decimal("0.0001")
        assert adapter.round_amount("1.23456789") == Decimal("1.2345")
        assert adapter.round_price("0.0512345678") == Decimal("0.051234")

    @pytest.mark.asyncio
    async def test_lot_validation(self, adapter, client):
        """Test minimum notional and price."""
        client.script("fetch_exchange_info", EXCHANGE_INFO)
        await adapter.connect()

        assert adapter.is_valid_lot("0.05", "0.01")
        assert not adapter.is_valid_lot("0.05", "0.001")
        assert adapter.is_valid_price("0.000001")
        assert not adapter.is_valid_price("0.0000001")

    @pytest.mark.asyncio
    async def test_unlisted_symbol_fails_connect(self, adapter, client):
        """Test trading an unlisted pair is refused."""
        client.script("fetch_exchange_info", {"symbols": []})

        with pytest.raises(ExchangeException):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_disconnect(self, adapter, client):
        """Test disconnect closes the client."""
        client.script("fetch_exchange_info", EXCHANGE_INFO)

        async with adapter:
            assert client.is_connected
        assert not client.is_connected


# ============================================================
# ACCOUNT AND MARKET DATA
# ============================================================

class TestAccount:
    """Tests for Binance body parsing."""

    @pytest.mark.asyncio
    async def test_ticker_after_clock_drift(self, adapter, client):
        """Test timestamp drift is retried on Binance."""
        client.script(
            "fetch_ticker",
            {"code": -1021, "msg": "Timestamp for this request is outside of the recvWindow."},
            {"symbol": "ETHBTC", "bidPrice": "0.05", "bidQty": "1", "askPrice": "0.051", "askQty": "2"},
        )

        result = await adapter.get_ticker()

        assert result.value == Ticker(bid=Decimal("0.05"), ask=Decimal("0.051"))
        assert client.call_count("fetch_ticker") == 2

    @pytest.mark.asyncio
    async def test_portfolio(self, adapter, client):
        """Test free balances; missing assets count as zero."""
        client.script("fetch_balances", {"balances": [
            {"asset": "BTC", "free": "0.5", "locked": "0.1"},
            {"asset": "BNB", "free": "3", "locked": "0"},
        ]})

        result = await adapter.get_portfolio()

        assert result.value == [
            PortfolioEntry(name="BTC", amount=Decimal("0.5")),
            PortfolioEntry(name="ETH", amount=Decimal("0")),
        ]

    @pytest.mark.asyncio
    async def test_fee_from_commission(self, adapter, client):
        """Test commission in basis points becomes a fraction."""
        client.script("fetch_fee_info", {"makerCommission": 10, "takerCommission": 10})

        assert (await adapter.get_fee()).value == Decimal("0.001")

    @pytest.mark.asyncio
    async def test_fee_default(self, adapter, client):
        """Test the default fee when none is reported."""
        client.script("fetch_fee_info", {"balances": []})

        assert (await adapter.get_fee()).value == Decimal("0.001")

    @pytest.mark.asyncio
    async def test_trades(self, adapter, client):
        """Test aggregate trades map to public trades."""
        client.script("fetch_trade_history", [
            {"a": 26129, "p": "0.01633102", "q": "4.70443515", "f": 27781, "l": 27781, "T": 1498793709153, "m": True},
            {"a": 26130, "p": "0.01633200", "q": "1.0", "f": 27782, "l": 27782, "T": 1498793710000, "m": False},
        ])

        result = await adapter.get_trades()

        assert [t.tid for t in result.value] == [26129, 26130]
        assert result.value[0].date == 1498793709
        assert result.value[0].price == Decimal("0.01633102")
        assert result.value[0].amount == Decimal("4.70443515")


# ============================================================
# ORDERS
# ============================================================

class TestOrders:
    """Tests for Binance order handling."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, state, is_open, executed", [
        ("NEW", OrderState.OPEN, True, False),
        ("PARTIALLY_FILLED", OrderState.PARTIALLY_FILLED, True, False),
        ("FILLED", OrderState.FILLED, False, True),
        ("CANCELED", OrderState.CANCELED, False, False),
        ("EXPIRED", OrderState.CANCELED, False, False),
    ])
    async def test_check_order(self, adapter, client, status, state, is_open, executed):
        """Test explicit statuses map to canonical status."""
        executed_qty = "0.4" if status == "PARTIALLY_FILLED" else "0"
        client.script("query_order", {"orderId": 1, "status": status, "executedQty": executed_qty})

        result = await adapter.check_order("1")

        assert result.value.state == state
        assert result.value.open == is_open
        assert result.value.executed == executed
        assert client.calls("query_order") == [("1",)]

    @pytest.mark.asyncio
    async def test_partially_filled_amount(self, adapter, client):
        """Test the executed quantity is carried."""
        client.script("query_order", {"orderId": 1, "status": "PARTIALLY_FILLED", "executedQty": "0.4"})

        result = await adapter.check_order("1")

        assert result.value.filled_amount == Decimal("0.4")

    @pytest.mark.asyncio
    async def test_get_order_filters_by_id(self, adapter, client):
        """Test only the order's own trades are aggregated."""
        client.script("fetch_order_trades", [
            {"orderId": 1, "price": "10", "qty": "1", "time": NOW_MS - 2000},
            {"orderId": 2, "price": "99", "qty": "5", "time": NOW_MS - 1500},
            {"orderId": 1, "price": "20", "qty": "1", "time": NOW_MS - 1000},
        ])

        result = await adapter.get_order("1")

        assert result.value.price == Decimal("15")
        assert result.value.amount == Decimal("2")

    @pytest.mark.asyncio
    async def test_get_order_fees_by_asset(self, adapter, client):
        """Test commissions are summed per commission asset."""
        client.script("fetch_order_trades", [
            {"orderId": 1, "price": "0.05", "qty": "1", "commission": "0.0015",
             "commissionAsset": "ETH", "time": NOW_MS - 2000},
            {"orderId": 1, "price": "0.05", "qty": "1", "commission": "0.0005",
             "commissionAsset": "ETH", "time": NOW_MS - 1500},
            {"orderId": 1, "price": "0.05", "qty": "1", "commission": "0.00001",
             "commissionAsset": "BNB", "time": NOW_MS - 1000},
        ])

        result = await adapter.get_order("1")

        assert result.value.fees == {"ETH": Decimal("0.0020"), "BNB": Decimal("0.00001")}

    @pytest.mark.asyncio
    async def test_cancel_unknown_order_is_filled(self, adapter, client):
        """Test Binance's unknown order reply on cancel."""
        client.script("cancel_order", {"code": -2011, "msg": "Unknown order sent."})

        result = await adapter.cancel_order("1")

        assert result.value == CancelResult(filled=True)

    @pytest.mark.asyncio
    async def test_ambiguous_placement_found(self, adapter, client):
        """Test reconciliation against Binance open orders."""
        client.script("place_order", TransportError("ETIMEDOUT: request timed out"))
        client.script("fetch_open_orders", [{
            "symbol": "ETHBTC",
            "orderId": 28,
            "price": "0.05000000",
            "origQty": "1.00000000",
            "executedQty": "0.00000000",
            "status": "NEW",
            "side": "SELL",
            "time": NOW_MS - 10000,
        }])

        result = await adapter.sell(Decimal("1"), Decimal("0.05"))

        assert result.value == "28"
        assert client.call_count("place_order") == 1

    @pytest.mark.asyncio
    async def test_ambiguous_placement_wrong_side(self, adapter, client):
        """Test an opposite-side order is not mistaken for ours."""
        client.script("place_order", TransportError("ETIMEDOUT: request timed out"))
        client.script("fetch_open_orders", [{
            "orderId": 28,
            "price": "0.05",
            "origQty": "1",
            "executedQty": "0",
            "side": "BUY",
            "time": NOW_MS - 10000,
        }])

        result = await adapter.sell(Decimal("1"), Decimal("0.05"))

        assert result.error.kind == ErrorKind.AMBIGUOUS
        assert client.calls("place_order")[0][0] == OrderSide.SELL


# ============================================================
# FACTORY
# ============================================================

class TestAdapterFactory:
    """Tests for AdapterFactory."""

    def test_list_supported(self):
        """Test built-in exchanges are listed."""
        assert AdapterFactory.list_supported() == ["binance", "poloniex"]

    def test_create_with_client(self):
        """Test creating an adapter around a given client."""
        config = AdapterConfig(currency="BTC", asset="ETH")

        adapter = AdapterFactory.create("Poloniex", config=config, client=MockExchangeClient())

        assert isinstance(adapter, PoloniexAdapter)
        assert adapter.exchange_id == "poloniex"
        assert adapter.pair == Pair("BTC", "ETH")

    def test_create_from_env(self, monkeypatch):
        """Test credentials are read from the environment."""
        monkeypatch.setenv("BINANCE_API_KEY", "test_key")
        monkeypatch.setenv("BINANCE_API_SECRET", "test_secret")

        adapter = create_adapter("binance", currency="BTC", asset="ETH", testnet=True)

        assert isinstance(adapter, BinanceAdapter)
        assert isinstance(adapter.client, BinanceClient)
        assert adapter.client.symbol == "ETHBTC"

    def test_create_unsupported_raises(self):
        """Test unsupported exchanges raise ValueError."""
        with pytest.raises(ValueError, match="Unsupported exchange"):
            AdapterFactory.create("unsupported_exchange", config=AdapterConfig(currency="BTC", asset="ETH"))

    def test_binance_capabilities(self):
        """Test the static descriptor."""
        capabilities = BinanceAdapter.get_capabilities()

        assert capabilities["name"] == "Binance"
        assert ["USDT", "BTC"] in capabilities["markets"]
