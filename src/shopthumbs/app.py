"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from shopthumbs.api.routes import products
from shopthumbs.core.config import Settings, configure_logging
from shopthumbs.core.database import setup_db_session
from shopthumbs.queue.redis_queue import JobQueue
from shopthumbs.services.pipeline import build_pipeline
from shopthumbs.uow import create_uow_factory
from shopthumbs.workers.image_worker import run_image_worker

logger = structlog.get_logger()

RESTART_DELAY = 1


def create_resilient_worker(
    coro_factory: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
) -> list[asyncio.Task]:
    """Create a worker with automatic restart on failure.

    Args:
        coro_factory: Zero-argument callable returning a fresh worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Single-item list holding the live task; the item is replaced on restart
    """

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Worker loops never return on their own
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_factory())
            new_task.add_done_callback(on_worker_done)
            current[0] = new_task

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_factory())
    task.add_done_callback(on_worker_done)
    current = [task]
    return current


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: configure logging, open database and Redis connections, start the image worker
    - Shutdown: stop the worker, close clients
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    redis_client = redis.from_url(settings.redis_url)
    job_queue = JobQueue(
        redis_client, name=settings.queue_name, max_attempts=settings.queue_max_attempts
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.redis = redis_client
    app.state.job_queue = job_queue

    shutdown_event = asyncio.Event()
    worker_tasks: list[asyncio.Task] = []
    pipeline = None

    if settings.run_worker_in_app:
        pipeline = build_pipeline(settings, session_factory)
        worker_tasks = create_resilient_worker(
            lambda: run_image_worker(job_queue, pipeline, settings),
            "image",
            shutdown_event,
        )
    else:
        logger.info("startup.worker_disabled", reason="RUN_WORKER_IN_APP=false")

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        queue=settings.queue_name,
    )

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    for task in worker_tasks:
        task.cancel()
    await asyncio.gather(*worker_tasks, return_exceptions=True)
    if pipeline is not None:
        await pipeline.aclose()

    await redis_client.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Shopthumbs API",
        description="Product catalog with asynchronous thumbnail generation",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(products.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database and queue connectivity test.

        Returns:
            200: {"status": "healthy", "queue": {...}} if Postgres and Redis respond
            503: {"status": "unhealthy", "error": {...}} otherwise
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            await app.state.redis.ping()
            depth = await app.state.job_queue.depth()

            logger.debug("health_check.success")
            return {"status": "healthy", "queue": depth}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
