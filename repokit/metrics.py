"""
Prometheus metrics for repository operations.

Tracks operation latency and failures per repository and table.
"""

from prometheus_client import Counter, Histogram

repository_operation_duration_seconds = Histogram(
    "repository_operation_duration_seconds",
    "Repository operation duration in seconds",
    ["repository", "table", "operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

repository_operation_errors_total = Counter(
    "repository_operation_errors_total",
    "Total failed repository operations",
    ["repository", "table", "operation"],
)


def track_operation(repository: str, table: str, operation: str, duration: float):
    """Track a completed repository operation."""
    repository_operation_duration_seconds.labels(
        repository=repository, table=table, operation=operation
    ).observe(duration)


def track_operation_error(repository: str, table: str, operation: str):
    """Track a failed repository operation."""
    repository_operation_errors_total.labels(
        repository=repository, table=table, operation=operation
    ).inc()
