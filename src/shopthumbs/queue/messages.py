"""Image job payloads exchanged over the queue.

Two wire formats are supported, selected per deployment:
- "json": {"product_id": 7, "image_url": "https://..."}
- "url": the raw image URL as the whole message body (no product to update)
"""

import json
from typing import Literal, Optional

from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator

from shopthumbs.services.exceptions import MalformedPayloadError

PayloadFormat = Literal["json", "url"]


class ImageJob(BaseModel):
    """One image of one product to be turned into a thumbnail."""

    product_id: Optional[StrictInt] = Field(
        default=None, description="Owning product (None in url mode)"
    )
    image_url: str = Field(..., min_length=1, description="HTTP/HTTPS URL of the source image")

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("image_url must be an http(s) URL")
        return v


def encode_job(job: ImageJob, payload_format: PayloadFormat = "json") -> bytes:
    """Serialize a job for LPUSH."""
    if payload_format == "url":
        return job.image_url.encode("utf-8")
    return json.dumps(
        {"product_id": job.product_id, "image_url": job.image_url}, separators=(",", ":")
    ).encode("utf-8")


def decode_job(body: bytes, payload_format: PayloadFormat = "json") -> ImageJob:
    """Deserialize a queue message body into an ImageJob.

    Raises:
        MalformedPayloadError: Body is not valid UTF-8, not valid JSON, or fails validation
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayloadError(f"Message body is not valid UTF-8: {e}") from e

    try:
        if payload_format == "url":
            return ImageJob(image_url=text)
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"Expected a JSON object, got {type(payload).__name__}")
        if payload.get("product_id") is None:
            raise MalformedPayloadError("Missing product_id")
        return ImageJob.model_validate(payload)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Message body is not valid JSON: {e}") from e
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid job payload: {e.errors()}") from e
