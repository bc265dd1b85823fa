"""Monitoring - event latency metrics, integrity checks and query timing."""

from uniswap_pool_tracker.monitoring.integrity import (
    IntegrityChecker,
    IntegrityCheckResult,
    IntegrityIssue,
)
from uniswap_pool_tracker.monitoring.metrics import (
    EventMetric,
    MetricsCollector,
    SystemMetrics,
    summarize,
)
from uniswap_pool_tracker.monitoring.query_perf import QueryMeasurement, QueryPerformanceRecorder

__all__ = [
    "EventMetric",
    "IntegrityCheckResult",
    "IntegrityChecker",
    "IntegrityIssue",
    "MetricsCollector",
    "QueryMeasurement",
    "QueryPerformanceRecorder",
    "SystemMetrics",
    "summarize",
]
