"""
Exchange Bridge - Operation Metrics.

============================================================
PURPOSE
============================================================
Metrics collection for the resilience layer.

METRICS TRACKED:
- Call attempts and retries per operation
- Final outcomes per operation and error kind
- Placement reconciliations (found / missed)
- Call latency per operation

============================================================
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List


logger = logging.getLogger(__name__)


# ============================================================
# METRIC TYPES
# ============================================================

class MetricType(Enum):
    """Types of metrics."""

    ATTEMPT = "attempt"
    RETRY = "retry"
    SUCCESS = "success"
    FATAL = "fatal"
    EXHAUSTED = "exhausted"
    AMBIGUOUS = "ambiguous"
    RECONCILED = "reconciled"
    RECONCILE_MISSED = "reconcile_missed"


@dataclass
class LatencyStats:
    """Latency statistics."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        """Average latency in ms."""
        return self.total_ms / self.count if self.count > 0 else 0.0

    def record(self, latency_ms: float) -> None:
        """Record a latency measurement."""
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)


# ============================================================
# OPERATION METRICS
# ============================================================

class OperationMetrics:
    """
    Metrics collector for one adapter.

    Only touched from the event loop thread.
    """

    def __init__(self, exchange_id: str, max_recent: int = 100):
        """
        Initialize metrics.

        Args:
            exchange_id: Exchange identifier
            max_recent: Number of recent events kept for debugging
        """
        self._exchange_id = exchange_id
        self._start_time = datetime.now(timezone.utc)

        self._counters: Dict[str, Dict[MetricType, int]] = defaultdict(lambda: defaultdict(int))
        self._latency: Dict[str, LatencyStats] = defaultdict(LatencyStats)

        self._recent: List[Dict[str, Any]] = []
        self._max_recent = max_recent

    @property
    def exchange_id(self) -> str:
        return self._exchange_id

    # --------------------------------------------------------
    # RECORDING
    # --------------------------------------------------------

    def increment(self, operation: str, metric: MetricType, detail: str = None) -> None:
        """Count one event for an operation."""
        self._counters[operation][metric] += 1

        if metric not in (MetricType.ATTEMPT, MetricType.SUCCESS):
            self._recent.append({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "operation": operation,
                "metric": metric.value,
                "detail": detail,
            })
            if len(self._recent) > self._max_recent:
                self._recent = self._recent[-self._max_recent:]

    def record_latency(self, operation: str, latency_ms: float) -> None:
        self._latency[operation].record(latency_ms)

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def count(self, operation: str, metric: MetricType) -> int:
        return self._counters[operation][metric] if operation in self._counters else 0

    def total(self, metric: MetricType) -> int:
        return sum(counts.get(metric, 0) for counts in self._counters.values())

    def get_latency(self, operation: str) -> LatencyStats:
        return self._latency.get(operation, LatencyStats())

    def get_recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self._recent[-limit:]

    def snapshot(self) -> Dict[str, Any]:
        """Get all metrics as a plain dict."""
        return {
            "exchange_id": self._exchange_id,
            "since": self._start_time.isoformat(),
            "operations": {
                op: {metric.value: n for metric, n in counts.items()}
                for op, counts in self._counters.items()
            },
            "latency_ms": {
                op: {
                    "count": stats.count,
                    "avg": round(stats.avg_ms, 2),
                    "min": round(stats.min_ms, 2) if stats.count else 0.0,
                    "max": round(stats.max_ms, 2),
                }
                for op, stats in self._latency.items()
            },
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._counters.clear()
        self._latency.clear()
        self._recent.clear()
        self._start_time = datetime.now(timezone.utc)
        logger.info(f"Metrics reset for {self._exchange_id}")
