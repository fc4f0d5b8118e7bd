"""Message ingestion hooks."""

from chatsearch.ingestion.indexer import MessageIndexer

__all__ = ["MessageIndexer"]
