"""
Exchange Bridge - Call Outcomes.

============================================================
PURPOSE
============================================================
Canonical classification of one call attempt.

    Success(payload)          - usable result
    FatalError(reason)        - stop, surface to operator
    RetryableError(reason)    - transient, retry per policy
    AmbiguousResult(reason)   - placement may have executed

Outcomes are produced fresh per attempt and never persisted.

============================================================
"""

from enum import Enum
from typing import Any, Optional, Union
from dataclasses import dataclass

from .errors import ErrorCategory, ErrorKind, ExchangeError


# ============================================================
# OPERATION KINDS
# ============================================================

class OperationKind(Enum):
    """Kinds of exchange calls; per-kind overrides and policies key on this."""

    TICKER = "getTicker"
    PORTFOLIO = "getPortfolio"
    FEE = "getFee"
    TRADES = "getTrades"
    PLACE_ORDER = "order"
    CHECK_ORDER = "checkOrder"
    GET_ORDER = "getOrder"
    CANCEL_ORDER = "cancelOrder"
    LOOKUP = "findRecentOrder"
    MARKET_INFO = "marketInfo"


class OutcomeMarker(Enum):
    """Markers set on a Success by per-operation overrides."""

    UNFILLED = "unfilled"
    """The order never matched against other orders."""

    ALREADY_FILLED = "alreadyFilled"
    """The order could not be canceled because it already filled."""


# ============================================================
# OUTCOMES
# ============================================================

@dataclass(frozen=True)
class Success:
    payload: Any = None
    marker: Optional[OutcomeMarker] = None


@dataclass(frozen=True)
class FatalError:
    reason: str
    category: ErrorCategory = ErrorCategory.UNKNOWN


@dataclass(frozen=True)
class RetryableError:
    reason: str
    category: ErrorCategory = ErrorCategory.UNKNOWN


@dataclass(frozen=True)
class AmbiguousResult:
    reason: str
    category: ErrorCategory = ErrorCategory.TIMEOUT


Outcome = Union[Success, FatalError, RetryableError, AmbiguousResult]


_KIND_BY_TYPE = {
    FatalError: ErrorKind.FATAL,
    RetryableError: ErrorKind.RETRYABLE,
    AmbiguousResult: ErrorKind.AMBIGUOUS,
}


def to_exchange_error(
    outcome: Outcome,
    operation: OperationKind,
    exchange_id: Optional[str] = None,
    attempts: int = 0,
) -> ExchangeError:
    """
    Convert a failed outcome into the error carried by a Result.

    Raises:
        ValueError: If the outcome is a Success
    """
    if isinstance(outcome, Success):
        raise ValueError("Success has no error")

    return ExchangeError(
        kind=_KIND_BY_TYPE[type(outcome)],
        message=outcome.reason,
        category=outcome.category,
        exchange_id=exchange_id,
        operation=operation.value,
        attempts=attempts,
    )
