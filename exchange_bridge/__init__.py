"""
Exchange Bridge Package.

============================================================
PURPOSE
============================================================
Resilience layer between a trading strategy and cryptocurrency
exchange REST APIs.

CRITICAL PRINCIPLE:
    "Never lose an order, never place one twice."
    Ambiguous placements are reconciled against live exchange
    state, never blindly retried.

AUTHORITY BOUNDARIES:
    CAN:
        - Retry transient failures per policy
        - Reinterpret known exchange errors
        - Reconcile ambiguous placements and cancellations

    MUST NOT:
        - Decide what to trade
        - Persist order state
        - Serialize a caller's trading intents

============================================================
MODULES
============================================================
- types: Canonical orders, fills, statuses, Result
- config: Retry policies, reconciliation, timeouts, credentials
- errors: Error taxonomy
- outcome: Per-attempt outcome variants
- classifier: Raw error/body -> Outcome mapping
- retry: Retry scheduler
- reconciliation: Placement and cancel reconcilers
- resolver: Order state and fill reduction
- markets: Tick-size rounding and lot validation
- metrics: Per-adapter operation metrics
- logging_utils: Credential-masking request logs
- clients: Raw exchange transports
- adapters: Exchange adapters (Binance, Poloniex)

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    EPOCH,
    OrderSide,
    OrderState,
    Pair,
    Ticker,
    PortfolioEntry,
    Trade,
    OpenOrder,
    Fill,
    FillSummary,
    OrderStatus,
    CancelResult,
    Order,
    Result,
)

# ============================================================
# ERRORS AND OUTCOMES
# ============================================================
from .errors import (
    ErrorKind,
    ErrorCategory,
    ExchangeError,
    ExchangeException,
    TransportError,
)
from .outcome import (
    OperationKind,
    OutcomeMarker,
    Success,
    FatalError,
    RetryableError,
    AmbiguousResult,
    Outcome,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    RetryPolicy,
    RETRY_CRITICAL,
    RETRY_FOREVER,
    RETRY_LOOKUP,
    DEFAULT_RETRY_POLICIES,
    ReconciliationConfig,
    TimeoutConfig,
    AdapterConfig,
)

# ============================================================
# RESILIENCE COMPONENTS
# ============================================================
from .classifier import OutcomeClassifier, classify
from .retry import RetryScheduler, FinalResult
from .reconciliation import PlacementIntent, PlacementReconciler, CancelReconciler
from .resolver import resolve_open_orders, resolve_status, summarize_fills
from .markets import MarketDescriptor, round_down
from .metrics import MetricType, OperationMetrics

# ============================================================
# CLIENTS AND ADAPTERS
# ============================================================
from .clients import (
    ExchangeClient,
    HttpExchangeClient,
    BinanceClient,
    PoloniexClient,
    MockExchangeClient,
)
from .adapters import (
    ExchangeAdapter,
    ExchangeCapabilities,
    BinanceAdapter,
    PoloniexAdapter,
    AdapterFactory,
    create_adapter,
)


__all__ = [
    # Types
    "EPOCH",
    "OrderSide",
    "OrderState",
    "Pair",
    "Ticker",
    "PortfolioEntry",
    "Trade",
    "OpenOrder",
    "Fill",
    "FillSummary",
    "OrderStatus",
    "CancelResult",
    "Order",
    "Result",
    # Errors and outcomes
    "ErrorKind",
    "ErrorCategory",
    "ExchangeError",
    "ExchangeException",
    "TransportError",
    "OperationKind",
    "OutcomeMarker",
    "Success",
    "FatalError",
    "RetryableError",
    "AmbiguousResult",
    "Outcome",
    # Configuration
    "RetryPolicy",
    "RETRY_CRITICAL",
    "RETRY_FOREVER",
    "RETRY_LOOKUP",
    "DEFAULT_RETRY_POLICIES",
    "ReconciliationConfig",
    "TimeoutConfig",
    "AdapterConfig",
    # Components
    "OutcomeClassifier",
    "classify",
    "RetryScheduler",
    "FinalResult",
    "PlacementIntent",
    "PlacementReconciler",
    "CancelReconciler",
    "resolve_open_orders",
    "resolve_status",
    "summarize_fills",
    "MarketDescriptor",
    "round_down",
    "MetricType",
    "OperationMetrics",
    # Clients and adapters
    "ExchangeClient",
    "HttpExchangeClient",
    "BinanceClient",
    "PoloniexClient",
    "MockExchangeClient",
    "ExchangeAdapter",
    "ExchangeCapabilities",
    "BinanceAdapter",
    "PoloniexAdapter",
    "AdapterFactory",
    "create_adapter",
]
