"""Object storage: Dropbox client, key derivation and the publisher."""

from shopthumbs.services.storage.dropbox_client import DropboxClient
from shopthumbs.services.storage.keys import storage_key_for
from shopthumbs.services.storage.publisher import StoragePublisher

__all__ = ["DropboxClient", "StoragePublisher", "storage_key_for"]
