"""Dropbox HTTP API v2 client for uploading thumbnails and managing shared links."""

import json
from typing import Any

import httpx

from shopthumbs.services.exceptions import LinkConflict, StorageAPIError, StorageErrorKind

API_BASE_URL = "https://api.dropboxapi.com/2"
CONTENT_BASE_URL = "https://content.dropboxapi.com/2"
SHARED_LINK_HOST = "https://www.dropbox.com"


def _error_summary(response: httpx.Response) -> tuple[str, str | None]:
    """Extract (error_summary, error .tag) from a Dropbox error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500], None
    if not isinstance(body, dict):
        return response.text[:500], None
    summary = str(body.get("error_summary") or response.text[:500])
    error = body.get("error")
    tag = error.get(".tag") if isinstance(error, dict) else None
    return summary, tag


def classify_response(response: httpx.Response) -> StorageAPIError:
    """Classify a non-2xx Dropbox response into a tagged StorageAPIError.

    Classification rules:
        - 409 with tag shared_link_already_exists -> LINK_EXISTS
        - 409 with a not_found tag or summary -> NOT_FOUND
        - 400 / other 409 -> INVALID
        - 401 / 403 -> AUTH
        - 429 -> RATE_LIMITED
        - 5xx -> UNAVAILABLE
    """
    summary, tag = _error_summary(response)
    status = response.status_code

    if status == 409:
        if tag == "shared_link_already_exists" or summary.startswith("shared_link_already_exists"):
            return StorageAPIError(StorageErrorKind.LINK_EXISTS, summary)
        if tag in ("shared_link_not_found", "not_found") or "not_found" in summary:
            return StorageAPIError(StorageErrorKind.NOT_FOUND, summary)
        return StorageAPIError(StorageErrorKind.INVALID, summary)
    if status in (401, 403):
        return StorageAPIError(StorageErrorKind.AUTH, summary)
    if status == 429:
        return StorageAPIError(StorageErrorKind.RATE_LIMITED, summary)
    if status >= 500:
        return StorageAPIError(StorageErrorKind.UNAVAILABLE, summary)
    return StorageAPIError(StorageErrorKind.INVALID, summary)


class DropboxClient:
    """Async Dropbox client covering the file upload and shared link endpoints."""

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Dropbox client.

        Args:
            access_token: Dropbox OAuth2 access token (from DROPBOX_ACCESS_TOKEN env var)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self._http = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.post(url, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageAPIError(StorageErrorKind.NETWORK, f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise StorageAPIError(StorageErrorKind.NETWORK, f"Network error: {e}") from e

        if response.is_success:
            return response.json()
        raise classify_response(response)

    async def upload(self, path: str, content: bytes) -> dict[str, Any]:
        """Upload bytes to `path`, replacing any existing file (last writer wins).

        Returns:
            Dropbox file metadata
        """
        arg = {"path": path, "mode": "overwrite", "autorename": False, "mute": True}
        return await self._post(
            f"{CONTENT_BASE_URL}/files/upload",
            headers={
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": json.dumps(arg),
            },
            content=content,
        )

    async def create_shared_link(self, path: str) -> str:
        """Create a public shared link for `path`.

        Returns:
            Shared link URL

        Raises:
            LinkConflict: A shared link already exists for this path
            StorageAPIError: Any other failure
        """
        try:
            metadata = await self._post(
                f"{API_BASE_URL}/sharing/create_shared_link_with_settings",
                json={"path": path},
            )
        except StorageAPIError as e:
            if e.kind is StorageErrorKind.LINK_EXISTS:
                raise LinkConflict(path, e.summary) from e
            raise
        return metadata["url"]

    async def get_shared_link_metadata(self, url: str) -> dict[str, Any]:
        """Look up a shared link by its URL."""
        return await self._post(
            f"{API_BASE_URL}/sharing/get_shared_link_metadata", json={"url": url}
        )

    async def list_shared_links(self, path: str) -> list[dict[str, Any]]:
        """List shared links pointing directly at `path` (first page only)."""
        result = await self._post(
            f"{API_BASE_URL}/sharing/list_shared_links",
            json={"path": path, "direct_only": True},
        )
        return list(result.get("links", []))

    async def check_connection(self) -> str:
        """Verify the access token by fetching the current account.

        Returns:
            Dropbox account id
        """
        account = await self._post(f"{API_BASE_URL}/users/get_current_account")
        return account["account_id"]

    @staticmethod
    def canonical_link_url(path: str) -> str:
        """Synthesize the canonical shared link URL used for metadata lookups."""
        return SHARED_LINK_HOST + path
