"""Durable image job queue (Redis lists) and its payload codec."""

from shopthumbs.queue.messages import ImageJob, decode_job, encode_job
from shopthumbs.queue.producer import enqueue_image_jobs
from shopthumbs.queue.redis_queue import Delivery, JobQueue

__all__ = ["Delivery", "ImageJob", "JobQueue", "decode_job", "encode_job", "enqueue_image_jobs"]
