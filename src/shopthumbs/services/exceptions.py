"""Service error hierarchy for the image pipeline.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransformError: Fetching, decoding or encoding an image failed
- PublishError: Uploading or sharing the thumbnail failed
- RecordError: Appending the shared link to the product failed
- MalformedPayloadError: A queue message could not be decoded into a job
- StorageAPIError: Dropbox API failure tagged with an explicit StorageErrorKind

Every class carries a `retryable` flag. The image worker requeues a delivery
only when the error that failed it is retryable.
"""

from enum import Enum


class ServiceError(Exception):
    """Base exception for all service errors."""

    retryable: bool = False


# Image transform errors
class TransformError(ServiceError):
    """Base exception for image transform errors."""

    pass


class FetchError(TransformError):
    """Network error, timeout or non-2xx response while downloading the source image."""

    retryable = True


class UnsupportedFormatError(TransformError):
    """Response is not an image, or its bytes could not be decoded."""

    pass


class EncodeError(TransformError):
    """Re-encoding the resized raster to JPEG failed."""

    pass


# Storage errors
class StorageErrorKind(str, Enum):
    """Classification of Dropbox API failures."""

    LINK_EXISTS = "link_exists"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    NETWORK = "network"
    INVALID = "invalid"


_TRANSIENT_KINDS = frozenset(
    {StorageErrorKind.RATE_LIMITED, StorageErrorKind.UNAVAILABLE, StorageErrorKind.NETWORK}
)


class StorageAPIError(ServiceError):
    """Dropbox API call failed.

    Attributes:
        kind: Explicit classification of the failure
        summary: Dropbox error_summary (or transport error text)
    """

    def __init__(self, kind: StorageErrorKind, summary: str):
        super().__init__(f"{kind.value}: {summary}")
        self.kind = kind
        self.summary = summary

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.kind in _TRANSIENT_KINDS


class PublishError(ServiceError):
    """Base exception for storage publication errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class UploadError(PublishError):
    """Writing the thumbnail to storage failed."""

    pass


class LinkConflict(StorageAPIError):
    """A shared link already exists for the path.

    Raised by the Dropbox client for `shared_link_already_exists`. The publisher
    recovers from it by looking up the existing link.
    """

    def __init__(self, path: str, summary: str = "shared_link_already_exists"):
        super().__init__(StorageErrorKind.LINK_EXISTS, summary)
        self.path = path


class LinkLookupError(PublishError):
    """Existing shared link could not be resolved after a conflict."""

    pass


# Persistence errors
class RecordError(ServiceError):
    """Base exception for result recording errors."""

    pass


class RecordNotFoundError(RecordError):
    """No product row exists for the job's product_id."""

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class PersistenceError(RecordError):
    """Database unreachable or write rejected."""

    retryable = True


# Queue errors
class MalformedPayloadError(ServiceError):
    """Queue message body could not be decoded into an image job."""

    pass
