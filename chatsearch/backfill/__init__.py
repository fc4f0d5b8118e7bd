"""Offline embedding backfill."""

from chatsearch.backfill.job import BackfillJob, BackfillReport

__all__ = ["BackfillJob", "BackfillReport"]
