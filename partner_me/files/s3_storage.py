"""Amazon S3 (or S3-compatible) storage backend."""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from partner_me.files.base import FileStorageError


class S3StorageProvider:
    provider_name = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        region: str = "",
        endpoint_url: str = "",
        public_base_url: str = "",
        client: Optional[Any] = None,
    ) -> None:
        if not bucket.strip():
            raise FileStorageError("s3_bucket_missing")
        self._bucket = bucket.strip()
        self._region = region.strip()
        self._public_base_url = public_base_url.rstrip("/")
        if client is not None:
            self._client = client
        else:
            kwargs = {}
            if self._region:
                kwargs["region_name"] = self._region
            if endpoint_url.strip():
                kwargs["endpoint_url"] = endpoint_url.strip()
            self._client = boto3.client("s3", **kwargs)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=path,
                Body=content,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
            )
        except (BotoCoreError, ClientError) as exc:
            raise FileStorageError(f"s3_upload_failed key={path}") from exc
        return path

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=path)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return
            raise FileStorageError(f"s3_delete_failed key={path}") from exc
        except BotoCoreError as exc:
            raise FileStorageError(f"s3_delete_failed key={path}") from exc

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=path)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404", "NotFound"}:
                return False
            raise FileStorageError(f"s3_head_failed key={path}") from exc
        except BotoCoreError as exc:
            raise FileStorageError(f"s3_head_failed key={path}") from exc
        return True

    def read(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=path)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise FileStorageError(f"s3_read_failed key={path}") from exc

    def get_url(self, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{path}"
        if self._region:
            return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{path}"
        return f"https://{self._bucket}.s3.amazonaws.com/{path}"
