"""
Exchange Bridge - Types.

============================================================
PURPOSE
============================================================
Canonical data model shared by every exchange variant.

CRITICAL PRINCIPLE:
    "The exchange is authoritative; local objects are views."
    Orders are never deleted locally. Fills are reduced to a
    volume-weighted summary and not retained individually.

============================================================
"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict, Tuple
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from .errors import ExchangeError, ExchangeException


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
"""Date reported for orders that never executed."""


# ============================================================
# ORDER TYPES
# ============================================================

class OrderSide(Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class OrderState(Enum):
    """
    Canonical order state.

    OPEN ──► PARTIALLY_FILLED ──► FILLED
      │              │
      └──────────────┴──► CANCELED

    UNKNOWN is reported when the exchange returns a status this
    library does not recognize; such orders are kept open.
    """

    OPEN = "OPEN"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    UNKNOWN = "UNKNOWN"


# ============================================================
# PAIR IDENTITY
# ============================================================

@dataclass(frozen=True)
class Pair:
    """
    Trading pair identity.

    Immutable for the lifetime of an adapter.
    """

    currency: str
    """Quote currency (e.g. BTC in BTC/ETH)."""

    asset: str
    """Traded asset."""

    def as_tuple(self) -> Tuple[str, str]:
        return (self.currency, self.asset)

    def __str__(self) -> str:
        return f"{self.currency}/{self.asset}"


# ============================================================
# MARKET DATA
# ============================================================

@dataclass
class Ticker:
    """Top of book."""

    bid: Decimal
    ask: Decimal


@dataclass
class PortfolioEntry:
    """Free balance of one side of the pair."""

    name: str
    amount: Decimal


@dataclass
class Trade:
    """A public trade from the pair's trade history."""

    tid: Any
    date: int
    """Unix timestamp in seconds."""

    price: Decimal
    amount: Decimal


# ============================================================
# ORDERS AND FILLS
# ============================================================

@dataclass
class OpenOrder:
    """An order as reported by the exchange's open-order listing."""

    order_id: str
    """Exchange-assigned order ID."""

    side: Optional[OrderSide]
    """Order side."""

    price: Decimal
    """Limit price."""

    amount: Decimal
    """Originally requested amount."""

    remaining: Decimal
    """Amount not yet filled."""

    created_at: Optional[datetime] = None
    """When the exchange accepted the order."""


@dataclass
class Fill:
    """One exchange-reported trade against an order."""

    amount: Decimal
    rate: Decimal
    date: datetime

    fee: Decimal = Decimal("0")
    fee_asset: Optional[str] = None
    """Asset the fee was charged in, when the exchange reports it."""


@dataclass
class FillSummary:
    """Volume-weighted reduction of an order's fills."""

    price: Decimal
    amount: Decimal
    date: datetime

    fees: Dict[str, Decimal] = field(default_factory=dict)
    """Fees paid per asset."""

    @property
    def executed(self) -> bool:
        """Amount 0 means the order never executed."""
        return self.amount > 0


@dataclass
class OrderStatus:
    """Canonical answer to "is this order still open"."""

    executed: bool
    """Whether the order is completely filled."""

    open: bool
    """Whether the order still rests on the book."""

    state: OrderState
    """Derived order state."""

    filled_amount: Optional[Decimal] = None
    """Amount filled so far, for orders that are still open."""


@dataclass
class CancelResult:
    """Outcome of a cancellation."""

    filled: bool
    """
    True when the order was already filled before the cancel landed,
    meaning it still requires downstream fill accounting.
    """


@dataclass
class Order:
    """
    Canonical view of a placed order.

    Only the order state resolver mutates state and filled_amount.
    """

    order_id: str
    side: OrderSide
    amount: Decimal
    price: Decimal

    state: OrderState = OrderState.OPEN
    filled_amount: Decimal = Decimal("0")

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.state in (OrderState.FILLED, OrderState.CANCELED)


# ============================================================
# OPERATION RESULT
# ============================================================

@dataclass
class Result:
    """
    Value-or-error pair returned by every public adapter operation.

    Exactly one of value / error is meaningful: a result with an
    error never carries a value.
    """

    value: Any = None
    error: Optional[ExchangeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """
        Return the value or raise.

        Raises:
            ExchangeException: If the operation failed
        """
        if self.error is not None:
            raise ExchangeException(self.error)
        return self.value

    @classmethod
    def success(cls, value: Any) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ExchangeError) -> "Result":
        return cls(error=error)
