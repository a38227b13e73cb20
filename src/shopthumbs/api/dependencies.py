"""FastAPI dependencies shared by the API routes."""

from typing import Callable

from fastapi import Request

from shopthumbs.core.config import Settings
from shopthumbs.queue.redis_queue import JobQueue
from shopthumbs.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded during app startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.post("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.products.get_by_id(product_id)
    """
    return request.app.state.uow_factory


def get_job_queue(request: Request) -> JobQueue:
    """Get the image job queue from app state."""
    return request.app.state.job_queue
