"""Background workers for async processing tasks."""

from shopthumbs.workers.image_worker import handle_delivery, run_image_worker

__all__ = ["handle_delivery", "run_image_worker"]
