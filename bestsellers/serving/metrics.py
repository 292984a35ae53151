"""
Prometheus Metrics

Process-wide collectors for cache effectiveness, query latency and recompute
outcomes, exposed by GET /metrics.
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# QUERY
# =============================================================================

CACHE_LOOKUPS = Counter(
    "bestsellers_cache_lookups_total",
    "Result cache lookups",
    ["result"],
)

QUERY_COMPUTE_TIME = Histogram(
    "bestsellers_query_compute_seconds",
    "Time spent aggregating and ranking on a cache miss",
    ["period"],
)


# =============================================================================
# RECOMPUTE
# =============================================================================

RECOMPUTE_RUNS = Counter(
    "bestsellers_recompute_runs_total",
    "Best-seller recompute runs",
    ["status"],
)

FLAGGED_PRODUCTS = Gauge(
    "bestsellers_flagged_products",
    "Products flagged as best sellers by the last recompute",
)
