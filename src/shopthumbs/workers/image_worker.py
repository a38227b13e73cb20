"""Image worker: drains the image queue and publishes product thumbnails.

Runs a fixed pool of consumer coroutines against one queue. Each consumer takes
one delivery at a time through these states:

    Idle -> Receiving -> Processing -> Completed | Failed -> Idle

- Idle: blocked in JobQueue.receive()
- Receiving: payload decoded into an ImageJob; malformed payloads are dead-lettered
- Processing: ImagePipeline.process() (fetch, transform, publish, record)
- Completed: delivery acknowledged
- Failed: delivery requeued if the error is retryable and attempts remain,
  otherwise dead-lettered

Deliveries are acknowledged only after success. Nothing done before a failure
is compensated: a thumbnail uploaded for a product that no longer exists stays
in storage.
"""

import asyncio
import time

import structlog

from shopthumbs.core.config import Settings
from shopthumbs.queue.messages import PayloadFormat, decode_job
from shopthumbs.queue.redis_queue import Delivery, JobQueue
from shopthumbs.services.exceptions import MalformedPayloadError, ServiceError
from shopthumbs.services.pipeline import ImagePipeline

logger = structlog.get_logger(__name__)

ERROR_BACKOFF_SECONDS = 5


async def handle_delivery(
    delivery: Delivery,
    queue: JobQueue,
    pipeline: ImagePipeline,
    payload_format: PayloadFormat = "json",
) -> str:
    """Process one delivery and settle it with the queue.

    Args:
        delivery: Message received from the queue
        queue: Queue the delivery came from (for ack/reject)
        pipeline: Shared pipeline dependencies
        payload_format: Expected wire format of message bodies

    Returns:
        Outcome: "completed", "requeued" or "dead_lettered"
    """
    start_time = time.time()

    try:
        job = decode_job(delivery.body, payload_format)
    except MalformedPayloadError as e:
        await queue.dead_letter(delivery)
        logger.warning(
            "image.job.malformed",
            error_message=str(e),
            body_preview=delivery.body[:200].decode("utf-8", errors="replace"),
            outcome="dead_lettered",
        )
        return "dead_lettered"

    log = logger.bind(
        product_id=job.product_id,
        image_url=job.image_url,
        attempt_number=delivery.attempts,
    )
    log.info("image.job.started")

    try:
        result = await pipeline.process(job)

    except ServiceError as e:
        outcome = await queue.reject(delivery, requeue=e.retryable)
        log.error(
            "image.job.failed",
            error_type=type(e).__name__,
            error_message=str(e),
            retryable=e.retryable,
            outcome=outcome,
        )
        return outcome

    except Exception as e:
        # Unexpected error - requeue within the attempt budget
        outcome = await queue.reject(delivery, requeue=True)
        log.error(
            "image.job.failed",
            error_type=type(e).__name__,
            error_message=str(e),
            outcome=outcome,
            exc_info=True,
        )
        return outcome

    await queue.ack(delivery)
    log.info(
        "image.job.succeeded",
        storage_key=result.storage_key,
        shareable_url=result.shareable_url,
        recorded=result.recorded,
        duration_seconds=time.time() - start_time,
    )
    return "completed"


async def consume(
    consumer_index: int,
    queue: JobQueue,
    pipeline: ImagePipeline,
    settings: Settings,
) -> None:
    """Consumer loop: receive and handle deliveries one at a time until cancelled."""
    while True:
        try:
            delivery = await queue.receive(timeout=settings.queue_block_timeout_seconds)
            if delivery is None:
                continue
            await handle_delivery(delivery, queue, pipeline, settings.queue_payload_format)

        except asyncio.CancelledError:
            raise

        except Exception as e:
            # Queue unreachable or similar - log and back off before receiving again
            logger.error(
                "worker.error",
                worker_type="image",
                consumer=consumer_index,
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)


async def run_image_worker(queue: JobQueue, pipeline: ImagePipeline, settings: Settings) -> None:
    """Main worker entry point.

    Recovers deliveries left unacknowledged by a previous run, then runs
    settings.worker_concurrency consumers until cancelled.

    Args:
        queue: Image job queue
        pipeline: Shared pipeline dependencies
        settings: Application settings (concurrency, timeouts, payload format)
    """
    recovered = await queue.recover_inflight()
    logger.info("worker.recovery", worker_type="image", recovered=recovered)

    logger.info(
        "worker.started",
        worker_type="image",
        queue=queue.name,
        concurrency=settings.worker_concurrency,
        max_attempts=queue.max_attempts,
    )

    consumers = [
        asyncio.create_task(consume(index, queue, pipeline, settings))
        for index in range(settings.worker_concurrency)
    ]
    try:
        await asyncio.gather(*consumers)
    except asyncio.CancelledError:
        logger.info("worker.stopped", worker_type="image")
        raise
    finally:
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
