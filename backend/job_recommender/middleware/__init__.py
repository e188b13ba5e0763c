"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Recommendation engine counters and latency histograms
"""

from job_recommender.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    CACHE_HITS,
    CACHE_MISSES,
    RECOMMENDATION_LATENCY,
    BEST_EFFORT_FAILURES,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "CACHE_HITS",
    "CACHE_MISSES",
    "RECOMMENDATION_LATENCY",
    "BEST_EFFORT_FAILURES",
]
