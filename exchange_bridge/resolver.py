"""
Exchange Bridge - Order State Resolver.

============================================================
PURPOSE
============================================================
Turns exchange order and trade records into canonical order
status and volume-weighted fill summaries.

CRITICAL INVARIANT:
    "An order missing from the open-order set is FILLED."
    The exchanges in scope do not expire or silently drop
    unfilled orders.

============================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional, Sequence

from .types import (
    EPOCH,
    Fill,
    FillSummary,
    OpenOrder,
    Order,
    OrderState,
    OrderStatus,
)


logger = logging.getLogger(__name__)


ZERO = Decimal("0")


# ============================================================
# STATUS RESOLUTION
# ============================================================

def resolve_open_orders(order_id: str, open_orders: Iterable[OpenOrder]) -> OrderStatus:
    """
    Derive status from the exchange's open-order listing.

    Args:
        order_id: Exchange order ID
        open_orders: Current open orders on the pair

    Returns:
        OrderStatus
    """
    order_id = str(order_id)
    match = next((o for o in open_orders if str(o.order_id) == order_id), None)

    if match is None:
        return OrderStatus(executed=True, open=False, state=OrderState.FILLED)

    filled = match.amount - match.remaining
    if filled > ZERO:
        state = OrderState.PARTIALLY_FILLED
    else:
        filled = ZERO
        state = OrderState.OPEN

    return OrderStatus(executed=False, open=True, state=state, filled_amount=filled)


_OPEN_STATUSES = {"NEW", "PARTIALLY_FILLED"}
_CLOSED_UNFILLED_STATUSES = {"CANCELED", "CANCELLED", "REJECTED", "EXPIRED", "EXPIRED_IN_MATCH"}


def resolve_status(status: str, filled_amount: Optional[Decimal] = None) -> OrderStatus:
    """
    Derive status from an explicit exchange status string.

    Unrecognized statuses resolve to UNKNOWN and are kept open so
    the caller keeps polling instead of dropping the order.
    """
    status_upper = (status or "").upper()
    filled = filled_amount if filled_amount is not None else ZERO

    if status_upper == "FILLED":
        return OrderStatus(executed=True, open=False, state=OrderState.FILLED)

    if status_upper in _CLOSED_UNFILLED_STATUSES:
        return OrderStatus(executed=False, open=False, state=OrderState.CANCELED)

    if status_upper in _OPEN_STATUSES:
        state = OrderState.PARTIALLY_FILLED if filled > ZERO else OrderState.OPEN
        return OrderStatus(executed=False, open=True, state=state, filled_amount=filled)

    logger.warning(f"Unknown order status: {status}")
    return OrderStatus(executed=False, open=True, state=OrderState.UNKNOWN, filled_amount=filled)


def unfilled_status() -> OrderStatus:
    """Status for an order the exchange reports as never matched."""
    return OrderStatus(executed=False, open=True, state=OrderState.OPEN, filled_amount=ZERO)


# ============================================================
# FILL REDUCTION
# ============================================================

def summarize_fills(fills: Sequence[Fill]) -> FillSummary:
    """
    Reduce fills to a volume-weighted average price.

    An empty sequence yields price 0, amount 0 and the epoch as
    date: the order did not execute, which is not an error.
    Fees are summed per asset.
    """
    price = ZERO
    amount = ZERO
    date = EPOCH
    fees: Dict[str, Decimal] = {}

    for fill in fills:
        if fill.amount <= ZERO:
            continue
        price = (price * amount + fill.rate * fill.amount) / (amount + fill.amount)
        amount += fill.amount
        date = fill.date
        if fill.fee_asset is not None:
            fees[fill.fee_asset] = fees.get(fill.fee_asset, ZERO) + fill.fee

    return FillSummary(price=price, amount=amount, date=date, fees=fees)


# ============================================================
# ORDER MUTATION
# ============================================================

def apply(order: Order, status: OrderStatus) -> Order:
    """
    Apply a freshly resolved status to an order.

    The only place an Order's state changes. FILLED and CANCELED are
    terminal; later statuses for a finished order are ignored.
    """
    if order.is_done:
        return order

    if status.state != order.state:
        logger.info(f"Order {order.order_id}: {order.state.value} -> {status.state.value}")

    order.state = status.state
    if status.state == OrderState.FILLED:
        order.filled_amount = order.amount
    elif status.filled_amount is not None:
        order.filled_amount = status.filled_amount
    order.updated_at = datetime.now(timezone.utc)

    return order
