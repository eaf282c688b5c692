"""
Exchange Bridge - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the resilience layer.

CRITICAL CONSTRAINTS:
- No blind retries of placement
- Unlimited retries only for best-effort polling
- Deterministic behavior

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .outcome import OperationKind


# ============================================================
# RETRY POLICY
# ============================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for one operation kind.

    Immutable; chosen per call, never mutated.
    """

    max_attempts: Optional[int] = 10
    """Maximum number of calls, or None for unlimited."""

    factor: float = 1.2
    """Exponential backoff multiplier."""

    min_delay_seconds: float = 1.0
    """Delay before the first retry."""

    max_delay_seconds: float = 30.0
    """Maximum delay between retries."""

    max_elapsed_seconds: Optional[float] = None
    """Give up once this much time has passed since the first call."""

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.min_delay_seconds < 0 or self.max_delay_seconds < self.min_delay_seconds:
            raise ValueError("delays must satisfy 0 <= min_delay <= max_delay")

    @property
    def unlimited(self) -> bool:
        return self.max_attempts is None and self.max_elapsed_seconds is None

    def next_delay(self, delay: float) -> float:
        """Delay to use after a retry that waited `delay`."""
        return min(delay * self.factor, self.max_delay_seconds)


RETRY_CRITICAL = RetryPolicy(
    max_attempts=10,
    factor=1.2,
    min_delay_seconds=1.0,
    max_delay_seconds=30.0,
)
"""Order placement, status and cancellation."""

RETRY_FOREVER = RetryPolicy(
    max_attempts=None,
    factor=1.2,
    min_delay_seconds=10.0,
    max_delay_seconds=30.0,
)
"""Best-effort background polling. Never used for placement."""

RETRY_LOOKUP = RetryPolicy(
    max_attempts=5,
    factor=1.5,
    min_delay_seconds=1.0,
    max_delay_seconds=10.0,
)
"""Reconciliation look-ups after an ambiguous placement."""


DEFAULT_RETRY_POLICIES: Dict[OperationKind, RetryPolicy] = {
    OperationKind.TICKER: RETRY_FOREVER,
    OperationKind.PORTFOLIO: RETRY_FOREVER,
    OperationKind.FEE: RETRY_FOREVER,
    OperationKind.TRADES: RETRY_FOREVER,
    OperationKind.PLACE_ORDER: RETRY_CRITICAL,
    OperationKind.CHECK_ORDER: RETRY_CRITICAL,
    OperationKind.GET_ORDER: RETRY_CRITICAL,
    OperationKind.CANCEL_ORDER: RETRY_CRITICAL,
    OperationKind.LOOKUP: RETRY_LOOKUP,
    OperationKind.MARKET_INFO: RETRY_CRITICAL,
}


# ============================================================
# RECONCILIATION CONFIGURATION
# ============================================================

@dataclass
class ReconciliationConfig:
    """
    Ambiguous placement reconciliation.

    The recency window is an empirical heuristic. Exchange clock
    skew shows up as false negatives; widen clock_skew_seconds if
    reconciliations miss orders that exist.
    """

    check_delay_seconds: float = 2.0
    """Wait before querying recent orders."""

    recency_window_seconds: float = 120.0
    """How far back an order counts as "just placed"."""

    clock_skew_seconds: float = 5.0
    """Added to the window to absorb exchange clock drift."""

    match_price: bool = True
    """Require the recent order's price to equal the requested price."""


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """HTTP timeouts."""

    connection_timeout_seconds: float = 5.0
    """Connection timeout."""

    read_timeout_seconds: float = 15.0
    """Socket read timeout."""

    total_timeout_seconds: float = 30.0
    """Whole request timeout."""


# ============================================================
# ADAPTER CONFIGURATION
# ============================================================

@dataclass
class AdapterConfig:
    """
    Configuration for one exchange adapter.

    One adapter serves one pair with one set of credentials.
    """

    currency: str = ""
    asset: str = ""

    # Credentials (can be None for public-only use)
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    testnet: bool = False

    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)

    retry_policies: Dict[OperationKind, RetryPolicy] = field(default_factory=dict)
    """Per-operation overrides of DEFAULT_RETRY_POLICIES."""

    def policy_for(self, kind: OperationKind) -> RetryPolicy:
        """Resolve the retry policy for an operation kind."""
        if kind in self.retry_policies:
            return self.retry_policies[kind]
        return DEFAULT_RETRY_POLICIES[kind]

    @classmethod
    def from_env(
        cls,
        exchange_id: str,
        currency: str,
        asset: str,
        testnet: bool = False,
    ) -> "AdapterConfig":
        """
        Create config from environment variables.

        Reads <EXCHANGE>_API_KEY and <EXCHANGE>_API_SECRET, after
        loading a .env file if one is present.

        Args:
            exchange_id: Exchange identifier
            currency: Quote currency
            asset: Traded asset
            testnet: Use testnet

        Returns:
            AdapterConfig
        """
        load_dotenv()
        prefix = exchange_id.upper()

        return cls(
            currency=currency,
            asset=asset,
            api_key=os.environ.get(f"{prefix}_API_KEY"),
            api_secret=os.environ.get(f"{prefix}_API_SECRET"),
            testnet=testnet,
        )
