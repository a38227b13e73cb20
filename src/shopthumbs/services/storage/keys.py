"""Deterministic storage paths for thumbnails.

The key depends only on the final path segment of the source URL. Two different
URLs that end in the same file name map to the same key and overwrite each other.
"""

import posixpath
import re
from urllib.parse import unquote, urlsplit

THUMBNAIL_EXTENSION = ".jpg"
FILLER = "_"

_DISALLOWED = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATORS = re.compile(r"[\s_-]+", re.ASCII)


def extract_file_name(image_url: str) -> str:
    """Return the last path segment of a URL, without query string or fragment."""
    path = urlsplit(image_url).path
    return unquote(path.rsplit("/", 1)[-1])


def sanitize_file_name(file_name: str) -> str:
    """Reduce a file name to `[A-Za-z0-9_]` and append the thumbnail extension.

    Example:
        >>> sanitize_file_name("Summer Sale-hero.png")
        'Summer_Sale_hero.jpg'
    """
    stem, _ = posixpath.splitext(file_name)
    cleaned = _DISALLOWED.sub(FILLER, stem)
    cleaned = _SEPARATORS.sub(FILLER, cleaned)
    cleaned = cleaned.strip(FILLER)
    return (cleaned or "image") + THUMBNAIL_EXTENSION


def storage_key_for(image_url: str) -> str:
    """Derive the Dropbox path for a source image URL.

    Example:
        >>> storage_key_for("https://cdn.example.com/p/a.png?x=1")
        '/a.jpg'
    """
    return "/" + sanitize_file_name(extract_file_name(image_url))
