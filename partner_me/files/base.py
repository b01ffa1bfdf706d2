"""Storage provider contract for uploaded image files."""

from __future__ import annotations

from typing import Protocol


class FileStorageError(RuntimeError):
    """Raised when a storage backend cannot complete an operation."""


class StorageProvider(Protocol):
    provider_name: str

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store bytes at a relative path and return that path."""

    def delete(self, path: str) -> None:
        """Remove a stored object; a missing object is not an error."""

    def exists(self, path: str) -> bool:
        """Return whether an object is stored at the path."""

    def read(self, path: str) -> bytes:
        """Return stored bytes."""

    def get_url(self, path: str) -> str:
        """Return a URL clients can fetch the object from."""
