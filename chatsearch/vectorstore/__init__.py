"""Vector store module."""

from chatsearch.vectorstore.index import VectorIndex
from chatsearch.vectorstore.models import (
    IndexStats,
    ScoredPoint,
    SemanticBackend,
    SemanticHit,
    SemanticSearchOutcome,
    VectorRecord,
)
from chatsearch.vectorstore.service import QdrantVectorStore, VectorStore

__all__ = [
    "IndexStats",
    "QdrantVectorStore",
    "ScoredPoint",
    "SemanticBackend",
    "SemanticHit",
    "SemanticSearchOutcome",
    "VectorIndex",
    "VectorRecord",
    "VectorStore",
]
