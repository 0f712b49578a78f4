"""
Prometheus metrics for monitoring and observability.

Provides counters, histograms, and gauges for tracking:
- Table ingestion requests and ingested rows
- Batch query items by outcome
- Query and batch latency
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

# Ingest requests
ingest_requests_total = Counter(
    "ingest_requests_total",
    "Total number of table ingest requests",
    ["status"],  # success/empty/rejected/failure
    registry=REGISTRY,
)

# Rows written to registered tables
rows_ingested_total = Counter(
    "rows_ingested_total",
    "Total number of rows ingested into tables",
    registry=REGISTRY,
)

# Batch items
batch_items_total = Counter(
    "batch_items_total",
    "Total number of batch query items",
    ["status"],  # 200/400/500
    registry=REGISTRY,
)

# ========== Histograms ==========

# Single query latency
query_latency_seconds = Histogram(
    "query_latency_seconds",
    "Time to execute one batch item against the query engine",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
    registry=REGISTRY,
)

# Whole batch latency
batch_latency_seconds = Histogram(
    "batch_latency_seconds",
    "Time to resolve every item of a batch",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

# Registered tables
tables_registered = Gauge(
    "tables_registered",
    "Number of tables held in the table registry",
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_batch_time(func: Callable):
    """Decorator to track the latency of a batch coroutine."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            return await func(*args, **kwargs)
        finally:
            batch_latency_seconds.observe(time.time() - start_time)

    return wrapper


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
