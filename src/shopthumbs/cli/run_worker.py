"""CLI command for running the image worker as a standalone process.

Usage:
    python -m shopthumbs.cli.run_worker [OPTIONS]

Examples:
    # Run with WORKER_CONCURRENCY consumers
    python -m shopthumbs.cli.run_worker

    # Override the number of consumers
    python -m shopthumbs.cli.run_worker --concurrency 8

    # Verbose logging
    python -m shopthumbs.cli.run_worker -v

Before consuming, the worker checks Redis, PostgreSQL and Dropbox. Any failed
check aborts startup with exit code 1.
"""

import asyncio
import signal
import sys
from argparse import ArgumentParser, Namespace

import redis.asyncio as redis
import structlog
from sqlalchemy import text

from shopthumbs.core.config import Settings, configure_logging
from shopthumbs.core.database import setup_db_session
from shopthumbs.queue.redis_queue import JobQueue
from shopthumbs.services.pipeline import ImagePipeline, build_pipeline
from shopthumbs.workers.image_worker import run_image_worker

logger = structlog.get_logger()


def parse_args() -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Consume image jobs and publish product thumbnails",
        epilog="Queue, database and storage settings are read from the environment",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of concurrent consumers (default: WORKER_CONCURRENCY)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


async def check_dependencies(
    redis_client: redis.Redis, session_factory, pipeline: ImagePipeline
) -> str | None:
    """Verify every external dependency is reachable.

    Returns:
        Name of the first failed dependency, or None when all checks pass
    """
    try:
        await redis_client.ping()
        logger.info("startup.check_passed", dependency="redis")
    except Exception as e:
        logger.error("startup.check_failed", dependency="redis", error=str(e))
        return "redis"

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("startup.check_passed", dependency="postgres")
    except Exception as e:
        logger.error("startup.check_failed", dependency="postgres", error=str(e))
        return "postgres"

    try:
        account_id = await pipeline.publisher.client.check_connection()
        logger.info("startup.check_passed", dependency="dropbox", account_id=account_id)
    except Exception as e:
        logger.error("startup.check_failed", dependency="dropbox", error=str(e))
        return "dropbox"

    return None


async def async_main() -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (clean shutdown), 1 (startup check failed or worker crashed)
    """
    args = parse_args()

    settings = Settings()  # type: ignore[call-arg]

    if args.verbose:
        settings.log_level = "DEBUG"
    if args.concurrency is not None:
        if args.concurrency < 1:
            print("Error: --concurrency must be at least 1", file=sys.stderr)
            return 1
        settings.worker_concurrency = args.concurrency

    configure_logging(settings)

    logger.info(
        "cli.started",
        queue=settings.queue_name,
        concurrency=settings.worker_concurrency,
        payload_format=settings.queue_payload_format,
    )

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    redis_client = redis.from_url(settings.redis_url)
    queue = JobQueue(
        redis_client, name=settings.queue_name, max_attempts=settings.queue_max_attempts
    )
    pipeline = build_pipeline(settings, session_factory)

    try:
        failed = await check_dependencies(redis_client, session_factory, pipeline)
        if failed is not None:
            print(f"Error: startup check failed for {failed}", file=sys.stderr)
            return 1

        worker_task = asyncio.create_task(run_image_worker(queue, pipeline, settings))

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker_task.cancel)

        try:
            await worker_task
        except asyncio.CancelledError:
            logger.info("cli.shutdown")
            return 0

        # run_image_worker only returns when cancelled
        logger.error("cli.worker_exited")
        return 1

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await pipeline.aclose()
        await redis_client.aclose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
