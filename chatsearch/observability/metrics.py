"""Prometheus metrics for message search.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Embedding provider latency, failures and zero-vector fallbacks
- Vector index operations and availability
- Search latency, backend and result quality
- Backfill outcomes
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from chatsearch.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding provider request duration in seconds",
    ["provider", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding provider requests",
    ["provider", "status"],
)

EMBEDDING_ZERO_VECTOR_TOTAL = Counter(
    "embedding_zero_vector_total",
    "Embeddings answered with the zero vector after every provider failed",
)

EMBEDDING_DIMENSION_MISMATCH_TOTAL = Counter(
    "embedding_dimension_mismatch_total",
    "Similarity computations on vectors of unequal length",
)

# Vector Index Metrics
VECTOR_INDEX_OPERATION_DURATION = Histogram(
    "vector_index_operation_duration_seconds",
    "Vector index operation duration",
    ["operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

VECTOR_INDEX_ENABLED = Gauge(
    "vector_index_enabled",
    "1 when the remote vector index serves requests, 0 when disabled",
)

# Search Metrics
SEARCH_DURATION = Histogram(
    "search_duration_seconds",
    "Search duration in seconds",
    ["mode", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

SEARCH_TOTAL = Counter(
    "searches_total",
    "Total searches by semantic backend",
    ["mode", "backend"],
)

SEARCH_RESULTS_RETURNED = Histogram(
    "search_results_returned",
    "Number of results returned per search",
    buckets=[0, 1, 2, 3, 5, 10, 20, 50, 100],
)

SEARCH_TOP_SCORE = Histogram(
    "search_top_score",
    "Top combined score per search",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0, 1.5],
)

# Backfill Metrics
BACKFILL_MESSAGES_TOTAL = Counter(
    "backfill_messages_total",
    "Messages handled by the backfill job",
    ["status"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # Message ids in the path
        if path.startswith("/messages/"):
            parts = path.split("/")
            if len(parts) >= 3 and parts[2] != "conversation":
                return "/messages/{id}"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    provider: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track one embedding provider call.

    Args:
        provider: Provider name.
        duration: Request duration in seconds.
        success: Whether the provider produced a usable vector.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(provider=provider, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(provider=provider, status=status).inc()


def track_zero_vector() -> None:
    """Count a zero-vector fallback."""
    EMBEDDING_ZERO_VECTOR_TOTAL.inc()


def track_dimension_mismatch() -> None:
    """Count a similarity call on vectors of unequal length."""
    EMBEDDING_DIMENSION_MISMATCH_TOTAL.inc()


def track_index_operation(
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a remote vector index call.

    Args:
        operation: Operation name (upsert, search, delete, ...).
        duration: Call duration in seconds.
        success: Whether the call succeeded.
    """
    status = "success" if success else "error"
    VECTOR_INDEX_OPERATION_DURATION.labels(operation=operation, status=status).observe(duration)


def set_index_enabled(enabled: bool) -> None:
    """Record whether the remote index is serving."""
    VECTOR_INDEX_ENABLED.set(1 if enabled else 0)


def track_search_request(
    mode: str,
    backend: str,
    duration: float,
    results_returned: int,
    top_score: float,
    success: bool = True,
) -> None:
    """Track search request metrics.

    Args:
        mode: combined or semantic.
        backend: Semantic backend that served the query.
        duration: Search duration in seconds.
        results_returned: Number of results returned.
        top_score: Highest score in the results.
        success: Whether the search succeeded.
    """
    status = "success" if success else "error"

    SEARCH_DURATION.labels(mode=mode, status=status).observe(duration)
    SEARCH_TOTAL.labels(mode=mode, backend=backend).inc()
    SEARCH_RESULTS_RETURNED.observe(results_returned)
    if top_score > 0:
        SEARCH_TOP_SCORE.observe(top_score)


def track_backfill(processed: int, errors: int, skipped: int) -> None:
    """Track backfill outcomes.

    Args:
        processed: Messages embedded and stored.
        errors: Messages that failed.
        skipped: Messages left for a later run (degraded embedding).
    """
    BACKFILL_MESSAGES_TOTAL.labels(status="processed").inc(processed)
    BACKFILL_MESSAGES_TOTAL.labels(status="error").inc(errors)
    BACKFILL_MESSAGES_TOTAL.labels(status="skipped").inc(skipped)
