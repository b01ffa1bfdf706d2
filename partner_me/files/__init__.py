"""File storage backends for uploaded images."""

from partner_me.files.base import FileStorageError, StorageProvider
from partner_me.files.factory import get_storage_provider, reset_storage_provider_cache
from partner_me.files.local_storage import LocalStorageProvider
from partner_me.files.s3_storage import S3StorageProvider

__all__ = [
    "FileStorageError",
    "LocalStorageProvider",
    "S3StorageProvider",
    "StorageProvider",
    "get_storage_provider",
    "reset_storage_provider_cache",
]
