"""Source image download over HTTP with a bounded timeout."""

import asyncio
from dataclasses import dataclass

import httpx

from shopthumbs.services.exceptions import FetchError


@dataclass(frozen=True)
class FetchedImage:
    content: bytes
    content_type: str | None


async def fetch_image(
    client: httpx.AsyncClient, image_url: str, timeout: float = 10.0
) -> FetchedImage:
    """Download raw image bytes from a public URL.

    The timeout bounds the whole exchange (connect, headers and body), so a
    server trickling bytes cannot hold a consumer past it.

    Args:
        client: Shared async HTTP client
        image_url: HTTP/HTTPS URL of the source image
        timeout: Total request timeout in seconds

    Returns:
        FetchedImage with the body and the declared Content-Type (if any)

    Raises:
        FetchError: Network error, timeout, or non-2xx status
    """
    try:
        async with asyncio.timeout(timeout):
            response = await client.get(image_url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except (TimeoutError, httpx.TimeoutException) as e:
        raise FetchError(f"Request timeout after {timeout:g}s: {image_url}") from e
    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"Unexpected status {e.response.status_code} fetching {image_url}"
        ) from e
    except httpx.HTTPError as e:
        raise FetchError(f"Network error fetching {image_url}: {e}") from e

    content_type = response.headers.get("content-type")
    return FetchedImage(content=response.content, content_type=content_type)
