"""Image pipeline: fetch -> transform -> publish -> record for one job.

The pipeline holds every client a job needs. It is built once at startup and
shared by all consumers, so no component reaches for module-level globals.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable

import httpx

from shopthumbs.core.config import Settings
from shopthumbs.queue.messages import ImageJob
from shopthumbs.services.imaging import fetch_image, transform_image
from shopthumbs.services.recorder import ResultRecorder
from shopthumbs.services.storage import DropboxClient, StoragePublisher, storage_key_for


@dataclass(frozen=True)
class PipelineResult:
    storage_key: str
    shareable_url: str
    recorded: bool


@dataclass
class ImagePipeline:
    """Dependencies and settings for processing image jobs."""

    http_client: httpx.AsyncClient
    publisher: StoragePublisher
    recorder: ResultRecorder
    fetch_timeout: float = 10.0
    thumbnail_size: int = 300
    jpeg_quality: int = 80

    async def process(self, job: ImageJob) -> PipelineResult:
        """Run every step for one job. The first error aborts the remaining steps.

        A thumbnail that was published before a recording failure stays in
        storage.

        Raises:
            TransformError: Fetch, decode or encode failed
            PublishError: Upload or link resolution failed
            RecordError: Appending to the product failed
        """
        fetched = await fetch_image(self.http_client, job.image_url, timeout=self.fetch_timeout)

        encoded = await asyncio.to_thread(
            transform_image,
            fetched.content,
            fetched.content_type,
            (self.thumbnail_size, self.thumbnail_size),
            self.jpeg_quality,
        )

        storage_key = storage_key_for(job.image_url)
        shareable_url = await self.publisher.publish(encoded, storage_key)

        if job.product_id is None:
            return PipelineResult(storage_key, shareable_url, recorded=False)

        await self.recorder.record(job.product_id, shareable_url)
        return PipelineResult(storage_key, shareable_url, recorded=True)

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.publisher.client.aclose()


def build_pipeline(
    settings: Settings,
    session_factory: Callable,
    dropbox_transport: httpx.AsyncBaseTransport | None = None,
    fetch_transport: httpx.AsyncBaseTransport | None = None,
) -> ImagePipeline:
    """Construct the pipeline and its clients from settings.

    Args:
        settings: Application settings
        session_factory: Database session factory for the recorder
        dropbox_transport: Optional transport for the Dropbox client (tests)
        fetch_transport: Optional transport for image downloads (tests)
    """
    dropbox = DropboxClient(
        access_token=settings.dropbox_access_token,
        timeout=settings.dropbox_timeout_seconds,
        transport=dropbox_transport,
    )
    return ImagePipeline(
        http_client=httpx.AsyncClient(transport=fetch_transport),
        publisher=StoragePublisher(dropbox, lookup_strategy=settings.link_lookup_strategy),
        recorder=ResultRecorder(session_factory),
        fetch_timeout=settings.fetch_timeout_seconds,
        thumbnail_size=settings.thumbnail_size,
        jpeg_quality=settings.jpeg_quality,
    )
