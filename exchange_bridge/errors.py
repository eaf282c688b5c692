"""
Exchange Bridge - Error Taxonomy.

============================================================
PURPOSE
============================================================
Standardized error representation for exchange operations with:
- A small actionable taxonomy (FATAL / RETRYABLE / AMBIGUOUS)
- Finer categories for operators and metrics
- Error context preservation (operation, exchange, attempts)

============================================================
ERROR KINDS
============================================================
1. FATAL      - Operator-visible, never retried
                (bad credentials, malformed request, access block)
2. RETRYABLE  - Transient infrastructure fault, retried per policy;
                only surfaced once the policy is exhausted
3. AMBIGUOUS  - Placement only: the request may have executed
                despite the client-visible failure

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass


logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorKind(Enum):
    """Actionable error kinds."""

    FATAL = "FATAL"
    RETRYABLE = "RETRYABLE"
    AMBIGUOUS = "AMBIGUOUS"


class ErrorCategory(Enum):
    """Standardized error categories."""

    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    EXCHANGE_ERROR = "EXCHANGE_ERROR"
    ACCESS_BLOCKED = "ACCESS_BLOCKED"
    AUTHENTICATION = "AUTHENTICATION"
    INVALID_REQUEST = "INVALID_REQUEST"
    RECONCILIATION = "RECONCILIATION"
    UNKNOWN = "UNKNOWN"


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass
class ExchangeError:
    """
    Standardized exchange error.

    Carried inside a Result; never raised by itself.
    """

    kind: ErrorKind
    message: str
    category: ErrorCategory = ErrorCategory.UNKNOWN

    # Context
    exchange_id: Optional[str] = None
    operation: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
            "exchange_id": self.exchange_id,
            "operation": self.operation,
            "attempts": self.attempts,
        }

    def is_retryable(self) -> bool:
        """Check if the underlying fault was transient."""
        return self.kind == ErrorKind.RETRYABLE

    def is_ambiguous(self) -> bool:
        """Check if the outcome of the call is unknown."""
        return self.kind == ErrorKind.AMBIGUOUS

    def __str__(self) -> str:
        """String representation."""
        prefix = f"{self.exchange_id}." if self.exchange_id else ""
        return f"[{self.kind.value}/{self.category.value}] {prefix}{self.operation or '?'}: {self.message}"


class ExchangeException(Exception):
    """Exception wrapper for ExchangeError."""

    def __init__(self, error: ExchangeError):
        self.error = error
        super().__init__(str(error))


# ============================================================
# TRANSPORT ERROR
# ============================================================

class TransportError(Exception):
    """
    Raised by exchange clients when a call fails below the API level.

    The message carries a stable signature token (ETIMEDOUT,
    ECONNRESET, "Response code 503", ...) that the outcome classifier
    matches against. Any body received with the failure is kept so
    HTML error and challenge pages can still be recognized.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
    ):
        self.status = status
        self.body = body
        super().__init__(message)


class ResponseError(ValueError):
    """
    Raised by response parsers when a delivered body cannot be used.

    The message is reported to the caller as a fatal exchange error.
    """
