"""Thumbnail publication: upload, then resolve a public shared link idempotently.

Link creation races are expected. Redelivered jobs re-run creation against an
already-shared path, and unrelated source URLs ending in the same file name share a
storage key. Whichever job creates the link first, every job converges on the
same URL.
"""

from typing import Literal

import structlog

from shopthumbs.services.exceptions import (
    LinkConflict,
    LinkLookupError,
    PublishError,
    StorageAPIError,
    UploadError,
)
from shopthumbs.services.storage.dropbox_client import DropboxClient

logger = structlog.get_logger(__name__)

LookupStrategy = Literal["list", "metadata"]


class StoragePublisher:
    """Publishes encoded thumbnails to Dropbox and returns their shared link."""

    def __init__(self, client: DropboxClient, lookup_strategy: LookupStrategy = "list"):
        """Initialize publisher.

        Args:
            client: Dropbox client shared by all consumers
            lookup_strategy: How to resolve an existing link after a conflict:
                "list" lists links scoped to the path and takes the first,
                "metadata" looks up the synthesized canonical URL directly
        """
        self.client = client
        self.lookup_strategy = lookup_strategy

    async def publish(self, content: bytes, storage_key: str) -> str:
        """Upload `content` to `storage_key` and return its public shared link.

        Raises:
            UploadError: Upload failed
            LinkLookupError: Link exists but could not be resolved
            PublishError: Link creation failed for any other reason
        """
        try:
            await self.client.upload(storage_key, content)
        except StorageAPIError as e:
            raise UploadError(
                f"Failed to upload {storage_key}: {e}", retryable=e.retryable
            ) from e

        try:
            url = await self.client.create_shared_link(storage_key)
        except LinkConflict:
            logger.info(
                "storage.link.conflict",
                storage_key=storage_key,
                lookup_strategy=self.lookup_strategy,
            )
            return await self.resolve_existing_link(storage_key)
        except StorageAPIError as e:
            raise PublishError(
                f"Failed to create shared link for {storage_key}: {e}", retryable=e.retryable
            ) from e

        logger.debug("storage.link.created", storage_key=storage_key, url=url)
        return url

    async def resolve_existing_link(self, storage_key: str) -> str:
        """Find the shared link that already exists for `storage_key`.

        Raises:
            LinkLookupError: Lookup failed or returned nothing
        """
        try:
            if self.lookup_strategy == "metadata":
                metadata = await self.client.get_shared_link_metadata(
                    self.client.canonical_link_url(storage_key)
                )
                url = metadata.get("url")
            else:
                links = await self.client.list_shared_links(storage_key)
                url = links[0].get("url") if links else None
        except StorageAPIError as e:
            raise LinkLookupError(
                f"Failed to retrieve existing shared link for {storage_key}: {e}",
                retryable=e.retryable,
            ) from e

        if not url:
            raise LinkLookupError(
                f"No shared link found for {storage_key} after conflict", retryable=True
            )
        return url
