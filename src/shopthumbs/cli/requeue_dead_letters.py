"""CLI command for moving dead-lettered image jobs back onto the queue.

Usage:
    python -m shopthumbs.cli.requeue_dead_letters [OPTIONS]

Examples:
    # Requeue every dead-lettered job
    python -m shopthumbs.cli.requeue_dead_letters

    # Requeue the 10 oldest
    python -m shopthumbs.cli.requeue_dead_letters --limit 10

    # Show what would be requeued
    python -m shopthumbs.cli.requeue_dead_letters --dry-run
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import redis.asyncio as redis
import structlog

from shopthumbs.core.config import Settings, configure_logging
from shopthumbs.queue.redis_queue import JobQueue

logger = structlog.get_logger()

PREVIEW_LIMIT = 20


def parse_args() -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Requeue dead-lettered image jobs")

    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of jobs to requeue (default: all)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List dead-lettered jobs without moving them",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


async def async_main() -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args()

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    redis_client = redis.from_url(settings.redis_url)
    queue = JobQueue(
        redis_client, name=settings.queue_name, max_attempts=settings.queue_max_attempts
    )

    try:
        depth = await queue.depth()

        print("\n" + "=" * 60)
        print("Dead Letter Requeue")
        print("=" * 60)
        print(f"Queue: {queue.name}")
        print(f"Dead-lettered jobs: {depth['dead']}")

        if args.dry_run:
            preview = await queue.dead_letters(limit=args.limit or PREVIEW_LIMIT)
            for body in preview:
                print(f"  - {body.decode('utf-8', errors='replace')}")
            if depth["dead"] > len(preview):
                print(f"  ... and {depth['dead'] - len(preview)} more")
            print("\n[DRY RUN] No jobs were moved")
            print("=" * 60 + "\n")
            return 0

        moved = await queue.requeue_dead_letters(limit=args.limit)
        print(f"Jobs requeued: {moved}")
        print("=" * 60 + "\n")
        logger.info("cli.requeued", queue=queue.name, moved=moved)
        return 0

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await redis_client.aclose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
