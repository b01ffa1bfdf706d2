"""Factory to resolve the active storage provider."""

from __future__ import annotations

from functools import lru_cache

from partner_me.core.config import get_settings
from partner_me.files.base import StorageProvider
from partner_me.files.local_storage import LocalStorageProvider
from partner_me.files.s3_storage import S3StorageProvider


@lru_cache(maxsize=1)
def get_storage_provider() -> StorageProvider:
    settings = get_settings()
    if settings.storage_type.strip().lower() == "s3":
        return S3StorageProvider(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            public_base_url=settings.s3_public_base_url,
        )
    return LocalStorageProvider(root=settings.upload_dir, public_base_url=settings.app_public_base_url)


def reset_storage_provider_cache() -> None:
    get_storage_provider.cache_clear()
