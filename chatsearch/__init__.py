"""Hybrid lexical and semantic search over message history."""

__version__ = "0.1.0"
