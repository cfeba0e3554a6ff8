"""
Object Storage Client

Thin async facade over an S3 bucket. Uploads happen elsewhere (the client
receives a pre-signed URL from the upload service); this core only checks,
inspects, downloads and deletes objects that are already there.

boto3 is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, NamedTuple, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from ..core.errors import StorageError

logger = logging.getLogger("rag.storage")

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectMetadata(NamedTuple):
    size: Optional[int]
    content_type: Optional[str]
    last_modified: Optional[datetime]


class ObjectStore:
    """
    S3-backed object store.

    Parameters
    ----------
    bucket_name : Optional[str]
        Defaults to settings.s3_bucket_name.
    client : Optional[Any]
        Pre-built boto3 S3 client. Built lazily from settings when omitted.
    """

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.bucket_name = bucket_name or settings.s3_bucket_name
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = (
                    settings.aws_secret_access_key.get_secret_value()
                )
            self._client = boto3.client("s3", **kwargs)
        return self._client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        """
        Return True if the object exists. Errors other than "not found" are
        raised as StorageError.
        """
        try:
            await asyncio.to_thread(
                self._get_client().head_object, Bucket=self.bucket_name, Key=key
            )
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise StorageError(f"Failed to check object '{key}': {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to check object '{key}': {exc}") from exc
        return True

    async def get_metadata(self, key: str) -> ObjectMetadata:
        try:
            response = await asyncio.to_thread(
                self._get_client().head_object, Bucket=self.bucket_name, Key=key
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to get metadata for '{key}': {exc}") from exc

        return ObjectMetadata(
            size=response.get("ContentLength"),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
        )

    async def download(self, key: str) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._get_client().get_object, Bucket=self.bucket_name, Key=key
            )
            body = response.get("Body")
            if body is None:
                raise StorageError(f"Empty response body for '{key}'")
            return await asyncio.to_thread(body.read)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to download '{key}': {exc}") from exc

    async def delete(self, key: str) -> bool:
        """
        Delete an object. Returns False instead of raising on failure so
        callers can report the outcome.
        """
        try:
            await asyncio.to_thread(
                self._get_client().delete_object, Bucket=self.bucket_name, Key=key
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Object deletion failed for %s: %s", key, exc)
            return False
        return True

    async def check_bucket(self) -> None:
        """Raise StorageError unless the configured bucket is reachable."""
        try:
            await asyncio.to_thread(
                self._get_client().head_bucket, Bucket=self.bucket_name
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Bucket '{self.bucket_name}' is not reachable: {exc}") from exc

    def get_url(self, key: str) -> str:
        return f"https://{self.bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))
