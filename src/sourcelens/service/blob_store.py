"""Blob storage for original uploads and serialized document records.

The store is a flat key -> bytes namespace. Keys under ``documents/`` hold
one JSON record per Document; keys under ``uploads/`` hold original files.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from sourcelens.constants import DEFAULT_BLOB_REGION
from sourcelens.exceptions import ConfigurationError, StorageError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class BlobInfo:
    """Listing entry for one stored blob."""

    pathname: str
    url: str
    size: int = 0
    uploaded_at: str | None = None


class BlobStore(Protocol):
    """Key -> bytes storage with list/put/get/delete/head."""

    def url_for(self, pathname: str) -> str: ...

    async def put(self, pathname: str, data: bytes, content_type: str = ...) -> BlobInfo: ...

    async def get(self, pathname: str) -> bytes | None: ...

    async def list(self, prefix: str = "") -> list[BlobInfo]: ...

    async def delete(self, pathname: str) -> None: ...

    async def head(self, pathname: str) -> BlobInfo | None: ...


class BlobStoreConfig:
    """Configuration class for the S3-compatible blob bucket."""

    @staticmethod
    def get_bucket() -> str:
        """Get the bucket name from BLOB_BUCKET.

        Raises:
            ConfigurationError: If BLOB_BUCKET is not set.
        """
        bucket = os.getenv("BLOB_BUCKET")
        if not bucket:
            raise ConfigurationError("BLOB_BUCKET environment variable is required")
        return bucket

    @staticmethod
    def get_region() -> str:
        return os.getenv("BLOB_REGION", DEFAULT_BLOB_REGION)

    @staticmethod
    def get_endpoint_url() -> str | None:
        """Custom endpoint for S3-compatible services (MinIO, R2, ...)."""
        return os.getenv("BLOB_ENDPOINT_URL") or None

    @staticmethod
    def get_public_base_url() -> str | None:
        return os.getenv("BLOB_PUBLIC_BASE_URL") or None


def _is_not_found(error: ClientError) -> bool:
    code = error.response.get("Error", {}).get("Code")
    return code in ("404", "NoSuchKey", "NotFound")


class S3BlobStore:
    """Blob store on an S3 bucket through boto3.

    boto3 is synchronous, so every call runs in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        region: str = DEFAULT_BLOB_REGION,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._s3_client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    @classmethod
    def from_env(cls) -> "S3BlobStore":
        """Build a store from the BLOB_* environment variables.

        Raises:
            ConfigurationError: If BLOB_BUCKET is missing.
        """
        return cls(
            bucket=BlobStoreConfig.get_bucket(),
            region=BlobStoreConfig.get_region(),
            endpoint_url=BlobStoreConfig.get_endpoint_url(),
            public_base_url=BlobStoreConfig.get_public_base_url(),
        )

    def url_for(self, pathname: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{pathname}"
        return f"s3://{self._bucket}/{pathname}"

    async def put(
        self, pathname: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> BlobInfo:
        """Write ``data`` at ``pathname``, replacing any existing blob."""
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._bucket,
                Key=pathname,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Blob put failed for {pathname}: {e}", exc_info=True)
            raise StorageError(f"Blob put failed for {pathname}: {e}") from e
        return BlobInfo(pathname=pathname, url=self.url_for(pathname), size=len(data))

    async def get(self, pathname: str) -> bytes | None:
        """Read a blob, or None if it does not exist."""
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object, Bucket=self._bucket, Key=pathname
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StorageError(f"Blob get failed for {pathname}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Blob get failed for {pathname}: {e}") from e

    async def list(self, prefix: str = "") -> list[BlobInfo]:
        """List every blob whose key starts with ``prefix``."""
        try:
            return await asyncio.to_thread(self._list_sync, prefix)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Blob listing failed for prefix '{prefix}': {e}", exc_info=True)
            raise StorageError(f"Blob listing failed: {e}") from e

    def _list_sync(self, prefix: str) -> list[BlobInfo]:
        paginator = self._s3_client.get_paginator("list_objects_v2")
        blobs = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                modified = item.get("LastModified")
                blobs.append(
                    BlobInfo(
                        pathname=item["Key"],
                        url=self.url_for(item["Key"]),
                        size=item.get("Size", 0),
                        uploaded_at=modified.isoformat() if isinstance(modified, datetime) else None,
                    )
                )
        return blobs

    async def delete(self, pathname: str) -> None:
        """Delete a blob; deleting a missing key is not an error."""
        try:
            await asyncio.to_thread(
                self._s3_client.delete_object, Bucket=self._bucket, Key=pathname
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Blob delete failed for {pathname}: {e}", exc_info=True)
            raise StorageError(f"Blob delete failed for {pathname}: {e}") from e

    async def head(self, pathname: str) -> BlobInfo | None:
        """Return blob details, or None if the key does not exist."""
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object, Bucket=self._bucket, Key=pathname
            )
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StorageError(f"Blob head failed for {pathname}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Blob head failed for {pathname}: {e}") from e
        modified = response.get("LastModified")
        return BlobInfo(
            pathname=pathname,
            url=self.url_for(pathname),
            size=response.get("ContentLength", 0),
            uploaded_at=modified.isoformat() if isinstance(modified, datetime) else None,
        )
