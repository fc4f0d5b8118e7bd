#!/usr/bin/env python
"""Backfill missing message embeddings and index entries.

Usage:
    python -m scripts.backfill --user-id 64f1c0 --max-batches 10
    python -m scripts.backfill --check

Safe to run repeatedly: messages that already carry an embedding are never
selected, and messages whose embedding degraded are left for the next run.
"""

import argparse
import asyncio
import sys

from chatsearch.container import build_container
from chatsearch.exceptions import ChatSearchError
from chatsearch.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


async def run_backfill(
    user_id: str | None,
    max_batches: int | None,
    check_only: bool = False,
) -> bool:
    """Run the backfill (or only report coverage).

    Args:
        user_id: Restrict to one participant's messages.
        max_batches: Upper bound on batches.
        check_only: Print coverage without changing anything.

    Returns:
        True if the run finished without errors.
    """
    setup_logging(level="INFO")
    container = build_container()
    await container.startup()

    try:
        if not check_only:
            report = await container.backfill.run(
                user_id=user_id,
                max_batches=max_batches or container.settings.backfill.max_batches,
            )
            print("\n" + "=" * 60)
            print("BACKFILL SUMMARY")
            print("=" * 60)
            print(f"Scope: {user_id or 'all users'}")
            print(f"Batches: {report.batches}")
            print(f"Processed: {report.processed}")
            print(f"Indexed: {report.indexed}")
            print(f"Skipped (degraded): {report.skipped}")
            print(f"Errors: {report.errors}")
            print(f"Completed: {report.completed}")

        stats = await container.orchestrator.get_search_stats(user_id)
        print("\n" + "=" * 60)
        print("EMBEDDING COVERAGE")
        print("=" * 60)
        print(f"Total messages: {stats.total_messages}")
        print(f"With embeddings: {stats.messages_with_embeddings}")
        print(f"Coverage: {stats.coverage_percent:.2f}%")
        print(f"Vector index: {'enabled' if stats.index.enabled else 'fallback'}")
        if stats.index.vector_count is not None:
            print(f"Indexed vectors: {stats.index.vector_count}")
        print(f"Provider chain: {' -> '.join(stats.provider.chain) or 'none'}")
        print(f"Dimensions: {stats.provider.dimensions}")
        print("=" * 60)

        return check_only or report.errors == 0
    except ChatSearchError as e:
        logger.error(f"Backfill failed: {e.message}", extra={"details": e.details})
        return False
    finally:
        await container.shutdown()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Generate missing embeddings and index them",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--user-id",
        default=None,
        help="Only process messages this user sent or received",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="Stop after this many batches",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only report embedding coverage",
    )

    args = parser.parse_args()

    ok = asyncio.run(
        run_backfill(
            user_id=args.user_id,
            max_batches=args.max_batches,
            check_only=args.check,
        )
    )

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
