"""Image download and thumbnail transcoding."""

from shopthumbs.services.imaging.fetcher import FetchedImage, fetch_image
from shopthumbs.services.imaging.transform import transform_image

__all__ = ["FetchedImage", "fetch_image", "transform_image"]
