"""S3 storage backend: put, streamed get, delete, paginated list, batched delete. Imported only in remote mode."""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from tm_backend.services.storage.base import (
    DEFAULT_CONTENT_TYPE,
    FileStream,
    ObjectNotFoundError,
    StorageBackend,
    StorageConfig,
    StorageError,
    StorageWriteError,
)

logger = logging.getLogger(__name__)

# DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000
_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")
# Without s3:ListBucket, GetObject on a missing key answers AccessDenied instead of NoSuchKey
_ACCESS_DENIED_CODES = ("403", "AccessDenied")


def _get_client(config: StorageConfig):
    import boto3
    return boto3.client(
        "s3",
        region_name=config.region,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        aws_session_token=config.session_token or None,
    )


def _error_code(exc: Exception) -> str | None:
    resp = getattr(exc, "response", None)
    return resp.get("Error", {}).get("Code") if isinstance(resp, dict) else None


class S3Storage(StorageBackend):
    """S3 backend over a sync boto3 client; blocking calls run in worker threads."""

    def __init__(self, config: StorageConfig, client=None) -> None:
        if not config.bucket_name:
            raise ValueError("S3 storage requires bucket_name to be set")
        self._bucket = config.bucket_name
        self._chunk_size = config.chunk_size
        self._client = client if client is not None else _get_client(config)

    @property
    def bucket(self) -> str:
        return self._bucket

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except Exception as e:
            raise StorageWriteError(f"Failed to put s3://{self._bucket}/{key}") from e

    async def get_stream(self, key: str) -> FileStream:
        try:
            resp = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
        except Exception as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            if _error_code(e) in _ACCESS_DENIED_CODES:
                logger.warning("S3 denied GetObject for %s; serving as not found (check s3:ListBucket)", key)
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            logger.error("Error getting object %s from S3: %s", key, e)
            raise
        return FileStream(
            chunks=self._iter_body(resp["Body"]),
            content_type=resp.get("ContentType") or DEFAULT_CONTENT_TYPE,
        )

    async def _iter_body(self, body) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def delete(self, key: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)

    async def delete_many(self, keys: list[str]) -> None:
        for i in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[i:i + DELETE_BATCH_SIZE]
            resp = await asyncio.to_thread(
                self._client.delete_objects,
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            errors = (resp or {}).get("Errors") or []
            if errors:
                raise StorageError(
                    f"Failed to delete {len(errors)} of {len(batch)} objects (first: {errors[0].get('Key')})"
                )

    def _list_keys(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    async def list_prefix(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list_keys, prefix)
