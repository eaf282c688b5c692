"""
Exchange Bridge - Market Descriptors.

============================================================
PURPOSE
============================================================
Per-pair order increments and rounding.

INVARIANT:
    Rounding never moves a price or amount up past the tick
    size. Values are truncated toward zero so an order never
    commits more funds than requested.

============================================================
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Optional

from .types import Pair


DEFAULT_STEP = Decimal("0.00000001")
"""Used when an exchange publishes no increment (8 decimals)."""


def to_decimal(value: Any) -> Decimal:
    """Convert exchange or caller input to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def precision(step: Decimal) -> int:
    """Number of decimal places of a tick size: 0.001 -> 3, 1 -> 0."""
    exponent = step.normalize().as_tuple().exponent
    return max(0, -exponent)


def round_down(value: Any, step: Optional[Decimal]) -> Decimal:
    """
    Truncate value to a multiple of step.

    Args:
        value: Amount or price
        step: Tick size; DEFAULT_STEP when None or zero

    Returns:
        Largest multiple of step not further from zero than value

    Raises:
        ValueError: If value is not a finite number
    """
    value = to_decimal(value)
    if not value.is_finite():
        raise ValueError(f"Cannot round non-finite value {value}")
    if step is None or step <= 0:
        step = DEFAULT_STEP

    units = (value / step).to_integral_value(rounding=ROUND_DOWN)
    quantum = Decimal(1).scaleb(-precision(step))
    return (units * step).quantize(quantum, rounding=ROUND_DOWN)


# ============================================================
# MARKET DESCRIPTOR
# ============================================================

@dataclass(frozen=True)
class MarketDescriptor:
    """
    Static trading rules of one pair.

    Consumed, not owned: published by the exchange or shipped as
    configuration.
    """

    pair: Pair

    amount_step: Decimal = DEFAULT_STEP
    """Minimal amount increment."""

    price_step: Decimal = DEFAULT_STEP
    """Minimal price increment."""

    min_amount: Decimal = Decimal("0")
    """Smallest order amount."""

    min_price: Decimal = Decimal("0")
    """Smallest order price."""

    min_notional: Decimal = Decimal("0")
    """Smallest amount * price."""

    def round_amount(self, amount: Any) -> Decimal:
        return round_down(amount, self.amount_step)

    def round_price(self, price: Any) -> Decimal:
        return round_down(price, self.price_step)

    def is_valid_price(self, price: Any) -> bool:
        return to_decimal(price) >= max(self.min_price, self.price_step)

    def is_valid_lot(self, price: Any, amount: Any) -> bool:
        amount = to_decimal(amount)
        if amount < self.min_amount:
            return False
        return amount * to_decimal(price) >= self.min_notional
