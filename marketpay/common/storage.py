"""Object storage for listing content and cover files.

Paths are owner-scoped keys (`<owner_id>/<file>`). Existence and deletion are
idempotent: deleting a missing object is not an error for callers.
"""

import asyncio
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from marketpay.common.config import Settings
from marketpay.common.errors import StorageError


class ObjectStorage(Protocol):
    async def exists(self, path: str) -> bool: ...

    async def delete(self, path: str) -> None: ...

    async def signed_url(self, path: str, ttl_seconds: int) -> str: ...


class S3ObjectStorage:
    """boto3-backed storage with bounded connect/read timeouts."""

    def __init__(self, settings: Settings, client=None) -> None:
        self.bucket = settings.storage_bucket
        # Outer bound spans botocore's own retries.
        self.call_timeout = settings.external_timeout_seconds * 3
        self.client = client or boto3.client(
            "s3",
            region_name=settings.storage_region,
            endpoint_url=settings.storage_endpoint_url,
            config=Config(
                connect_timeout=settings.external_timeout_seconds,
                read_timeout=settings.external_timeout_seconds,
                retries={"max_attempts": 2},
            ),
        )

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.call_timeout)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"storage call timed out after {self.call_timeout}s key={kwargs.get('Key')}") from exc

    async def exists(self, path: str) -> bool:
        try:
            await self._call(self.client.head_object, Bucket=self.bucket, Key=path)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"head_object failed key={path} code={code}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"head_object failed key={path} error={exc}") from exc

    async def delete(self, path: str) -> None:
        try:
            await self._call(self.client.delete_object, Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return
            raise StorageError(f"delete_object failed key={path} code={code}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"delete_object failed key={path} error={exc}") from exc

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            return await self._call(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"presign failed key={path} error={exc}") from exc
