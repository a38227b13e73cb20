"""Producer side: turn a saved product into one queued job per source image."""

import structlog

from shopthumbs.models.product import Product
from shopthumbs.queue.messages import ImageJob, PayloadFormat, encode_job
from shopthumbs.queue.redis_queue import JobQueue

logger = structlog.get_logger()


async def enqueue_image_jobs(
    queue: JobQueue, product: Product, payload_format: PayloadFormat = "json"
) -> int:
    """Enqueue one ImageJob per entry of product.source_images.

    Args:
        queue: Target job queue
        product: Persisted product (must have an ID)
        payload_format: Wire format expected by the consumers

    Returns:
        Number of enqueued jobs
    """
    if product.id is None:
        raise ValueError("Product must be persisted before enqueueing image jobs")

    bodies = [
        encode_job(ImageJob(product_id=product.id, image_url=url), payload_format)
        for url in product.source_images
    ]
    await queue.enqueue_many(bodies)

    logger.info("product.images.enqueued", product_id=product.id, job_count=len(bodies))
    return len(bodies)
