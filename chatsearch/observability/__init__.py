"""Observability module for metrics and monitoring."""

from chatsearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    set_index_enabled,
    track_backfill,
    track_dimension_mismatch,
    track_embedding_request,
    track_index_operation,
    track_search_request,
    track_zero_vector,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "set_index_enabled",
    "track_backfill",
    "track_dimension_mismatch",
    "track_embedding_request",
    "track_index_operation",
    "track_search_request",
    "track_zero_vector",
]
