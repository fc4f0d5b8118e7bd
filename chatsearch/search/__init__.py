"""Hybrid search module."""

from chatsearch.search.models import (
    SearchMetadata,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SearchSource,
    SearchStats,
    SearchType,
)
from chatsearch.search.orchestrator import SearchOrchestrator
from chatsearch.search.ranking import describe_score, merge_results

__all__ = [
    "SearchMetadata",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchResponse",
    "SearchResult",
    "SearchSource",
    "SearchStats",
    "SearchType",
    "describe_score",
    "merge_results",
]
