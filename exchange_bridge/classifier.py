"""
Exchange Bridge - Outcome Classifier.

============================================================
PURPOSE
============================================================
Turns the raw result of one exchange call (transport error
and/or decoded body) into a canonical Outcome.

RULES (in order):
1. An anti-bot challenge page is always FATAL (ACCESS_BLOCKED)
2. Extract an error message from the transport error, an empty
   body, an embedded error field or an HTML error page
3. No error message -> Success(body)
4. Per-operation overrides (first match wins)
5. Recoverable signatures -> RETRYABLE
6. Anything else -> FATAL

The signature tables were collected from production traffic,
not from a documented error contract. New exchange error strings
need to be added here as they are observed.

============================================================
"""

import logging
import re
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Pattern, Tuple
from dataclasses import dataclass

from .errors import ErrorCategory
from .outcome import (
    OperationKind,
    OutcomeMarker,
    Outcome,
    Success,
    FatalError,
    RetryableError,
    AmbiguousResult,
)


logger = logging.getLogger(__name__)


# ============================================================
# SIGNATURE TABLES
# ============================================================

@dataclass(frozen=True)
class ErrorSignature:
    """A (pattern -> category) entry of a recoverable-error table."""

    pattern: Pattern
    category: ErrorCategory

    def matches(self, message: str) -> bool:
        return self.pattern.search(message) is not None


def signature(regex: str, category: ErrorCategory) -> ErrorSignature:
    return ErrorSignature(re.compile(regex), category)


RECOVERABLE_SIGNATURES: Tuple[ErrorSignature, ...] = (
    signature(r"E?SOCKETTIMEDOUT", ErrorCategory.TIMEOUT),
    signature(r"E?CONNTIMEDOUT", ErrorCategory.NETWORK),
    signature(r"E?TIMEDOUT", ErrorCategory.TIMEOUT),
    signature(r"E?CONNRESET", ErrorCategory.NETWORK),
    signature(r"E?CONNREFUSED", ErrorCategory.NETWORK),
    signature(r"E?NOTFOUND", ErrorCategory.NETWORK),
    signature(r"\b429\b", ErrorCategory.RATE_LIMIT),
    signature(r"\b(500|502|503|504|522)\b", ErrorCategory.EXCHANGE_ERROR),
    signature(r"Empty response", ErrorCategory.EXCHANGE_ERROR),
    signature(r"Please try again in a few minutes\.", ErrorCategory.EXCHANGE_ERROR),
    signature(r"Nonce must be greater than", ErrorCategory.INVALID_REQUEST),
    signature(r"(?i)nonce too low", ErrorCategory.INVALID_REQUEST),
)
"""Recoverable signatures shared by every exchange."""

BINANCE_SIGNATURES: Tuple[ErrorSignature, ...] = (
    # Timestamp outside recvWindow; clock drift corrects itself
    signature(r"Error -1021\b", ErrorCategory.TIMEOUT),
    signature(r"Error -10(03|15)\b", ErrorCategory.RATE_LIMIT),
    signature(r"Error -100[0167]\b", ErrorCategory.EXCHANGE_ERROR),
    signature(r"Response code 5\d\d", ErrorCategory.EXCHANGE_ERROR),
)

POLONIEX_SIGNATURES: Tuple[ErrorSignature, ...] = ()


FATAL_CATEGORIES: Tuple[ErrorSignature, ...] = (
    signature(
        r"(?i)invalid api.?key|invalid signature|api-key format invalid|Error -(1022|2014|2015)\b",
        ErrorCategory.AUTHENTICATION,
    ),
    signature(r"\b(401|403)\b", ErrorCategory.AUTHENTICATION),
    signature(r"\b4\d\d\b|Error -1[01]\d\d\b", ErrorCategory.INVALID_REQUEST),
)
"""Only used to label fatal errors; does not affect retry decisions."""


# ============================================================
# OPERATION OVERRIDES
# ============================================================

class OverrideAction(Enum):
    UNFILLED = "UNFILLED"
    ALREADY_FILLED = "ALREADY_FILLED"
    AMBIGUOUS = "AMBIGUOUS"


@dataclass(frozen=True)
class OperationOverride:
    """Reinterpretation of an error message for specific operations."""

    operations: FrozenSet[OperationKind]
    pattern: Pattern
    action: OverrideAction

    def applies(self, kind: OperationKind, message: str) -> bool:
        return kind in self.operations and self.pattern.search(message) is not None


def override(
    operations: Iterable[OperationKind],
    regex: str,
    action: OverrideAction,
) -> OperationOverride:
    return OperationOverride(frozenset(operations), re.compile(regex), action)


OPERATION_OVERRIDES: Tuple[OperationOverride, ...] = (
    # Not an error: the order never executed against other orders
    override(
        (OperationKind.CHECK_ORDER, OperationKind.GET_ORDER),
        r"not found, or you are not the person who placed it",
        OverrideAction.UNFILLED,
    ),
    override(
        (OperationKind.CANCEL_ORDER,),
        r"Invalid order number, or you are not the person who placed the order",
        OverrideAction.ALREADY_FILLED,
    ),
    # The request was sent and may have executed; a connect
    # timeout (ECONNTIMEDOUT) never reached the exchange
    override(
        (OperationKind.PLACE_ORDER,),
        r"\bE(SOCKET)?TIMEDOUT\b",
        OverrideAction.AMBIGUOUS,
    ),
)
"""Overrides shared by every exchange."""

BINANCE_OVERRIDES: Tuple[OperationOverride, ...] = (
    override(
        (OperationKind.CANCEL_ORDER,),
        r"UNKNOWN_ORDER|Unknown order sent",
        OverrideAction.ALREADY_FILLED,
    ),
)


# ============================================================
# BODY INSPECTION
# ============================================================

CHALLENGE_MARKERS = ("Please complete the security check to proceed.",)
TRY_AGAIN_MARKER = "Please try again in a few minutes."
HTML_MARKER = re.compile(r"(?i)<!DOCTYPE html>|<html")

ACCESS_BLOCKED_REASON = (
    "Access blocked by an anti-bot challenge page (your IP has been flagged). "
    "Retrying will not help; operator action is required."
)

_SUCCESS_CODES = {0, 200, "0", "200"}


def is_challenge_page(body: Any) -> bool:
    return isinstance(body, str) and any(m in body for m in CHALLENGE_MARKERS)


def extract_body_error(body: Any) -> Optional[str]:
    """
    Find an error hidden in an otherwise delivered body.

    Returns:
        Error message, or None if the body looks like real data
    """
    if body is None or body == "":
        return "Empty response"

    if isinstance(body, dict):
        if body.get("error"):
            return str(body["error"])
        if "code" in body and "msg" in body and body["code"] not in _SUCCESS_CODES:
            return f"Error {body['code']}: {body['msg']}"
        return None

    if isinstance(body, str):
        if TRY_AGAIN_MARKER in body:
            return TRY_AGAIN_MARKER
        if HTML_MARKER.search(body):
            return body

    return None


# ============================================================
# CLASSIFIER
# ============================================================

class OutcomeClassifier:
    """
    Pure mapping from raw call results to Outcomes.

    Identical input always classifies identically.
    """

    def __init__(
        self,
        extra_signatures: Iterable[ErrorSignature] = (),
        extra_overrides: Iterable[OperationOverride] = (),
    ):
        """
        Initialize classifier.

        Args:
            extra_signatures: Exchange-specific recoverable signatures
            extra_overrides: Exchange-specific operation overrides
        """
        self._signatures = tuple(extra_signatures) + RECOVERABLE_SIGNATURES
        self._overrides = tuple(extra_overrides) + OPERATION_OVERRIDES

    @property
    def signatures(self) -> Tuple[ErrorSignature, ...]:
        return self._signatures

    @property
    def overrides(self) -> Tuple[OperationOverride, ...]:
        return self._overrides

    def classify(
        self,
        kind: OperationKind,
        raw_error: Any = None,
        raw_body: Any = None,
    ) -> Outcome:
        """
        Classify one call attempt.

        Args:
            kind: Operation that was attempted
            raw_error: Transport error or error message, if any
            raw_body: Decoded response body, if any

        Returns:
            Outcome
        """
        if is_challenge_page(raw_body):
            return FatalError(ACCESS_BLOCKED_REASON, ErrorCategory.ACCESS_BLOCKED)

        if raw_error is not None:
            message = str(raw_error) or type(raw_error).__name__
        else:
            message = extract_body_error(raw_body)

        if message is None:
            return Success(raw_body)

        for entry in self._overrides:
            if entry.applies(kind, message):
                return self._apply_override(entry.action, message)

        for entry in self._signatures:
            if entry.matches(message):
                return RetryableError(_short(message), entry.category)

        return FatalError(_short(message), self._fatal_category(message))

    def _apply_override(self, action: OverrideAction, message: str) -> Outcome:
        if action == OverrideAction.UNFILLED:
            return Success({"unfilled": True}, OutcomeMarker.UNFILLED)
        if action == OverrideAction.ALREADY_FILLED:
            return Success({"filled": True}, OutcomeMarker.ALREADY_FILLED)
        return AmbiguousResult(_short(message), ErrorCategory.TIMEOUT)

    def _fatal_category(self, message: str) -> ErrorCategory:
        for entry in FATAL_CATEGORIES:
            if entry.matches(message):
                return entry.category
        return ErrorCategory.UNKNOWN


def _short(message: str, limit: int = 300) -> str:
    # HTML error pages can be very long
    message = message.strip()
    if len(message) <= limit:
        return message
    return message[:limit] + "..."


_default_classifier = OutcomeClassifier()


def classify(
    kind: OperationKind,
    raw_error: Any = None,
    raw_body: Any = None,
) -> Outcome:
    """Classify with the exchange-independent tables."""
    return _default_classifier.classify(kind, raw_error, raw_body)
