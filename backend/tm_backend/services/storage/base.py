"""Storage backend interface: put, stream, delete, batch delete, list by prefix. Implementations: local disk or S3."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CHUNK_BYTES = 64 * 1024


class StorageError(Exception):
    """Base class for storage failures."""


class StorageWriteError(StorageError):
    """Backend rejected or failed a write. No reference must be recorded."""


class ObjectNotFoundError(StorageError, FileNotFoundError):
    """Key does not exist in the active backend."""


class InvalidImageError(ValueError):
    """Avatar bytes could not be decoded as an image."""


@dataclass(frozen=True)
class StorageConfig:
    """Immutable storage settings, resolved once at startup.

    Remote (S3) mode needs region, both keys and a bucket; the session token
    is optional. Anything less selects local mode under uploads_dir.
    """

    uploads_dir: str = "./uploads"
    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    bucket_name: str | None = None
    chunk_size: int = DEFAULT_CHUNK_BYTES

    @property
    def remote_enabled(self) -> bool:
        required = (self.region, self.access_key_id, self.secret_access_key, self.bucket_name)
        return all(v and v.strip() for v in required)

    @classmethod
    def from_settings(cls, settings) -> "StorageConfig":
        return cls(
            uploads_dir=settings.uploads_dir,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            session_token=settings.aws_session_token or None,
            bucket_name=settings.aws_bucket_name,
            chunk_size=settings.stream_chunk_bytes,
        )

    def describe(self) -> dict:
        """Config as a dict for logging (pass through redact_for_log)."""
        return {
            "mode": "s3" if self.remote_enabled else "local",
            "uploads_dir": self.uploads_dir,
            "region": self.region,
            "bucket_name": self.bucket_name,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
            "session_token": self.session_token,
        }


@dataclass(frozen=True)
class FileStream:
    """Lazy byte stream plus the content type to serve it with."""

    chunks: AsyncIterator[bytes]
    content_type: str = DEFAULT_CONTENT_TYPE


class StorageBackend(ABC):
    """Abstract storage addressed by backend-relative keys (e.g. avatars/x.webp)."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        """Write data under key. Raise StorageWriteError on failure."""
        ...

    @abstractmethod
    async def get_stream(self, key: str) -> FileStream:
        """Return a lazy stream over key. Raise ObjectNotFoundError before producing bytes if missing."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are not an error."""
        ...

    @abstractmethod
    async def delete_many(self, keys: list[str]) -> None:
        """Remove every key in keys."""
        ...

    @abstractmethod
    async def list_prefix(self, prefix: str) -> list[str]:
        """Return all keys starting with prefix."""
        ...

    async def delete_prefix(self, prefix: str) -> int:
        """Remove everything under prefix; return how many keys were removed."""
        keys = await self.list_prefix(prefix)
        if keys:
            await self.delete_many(keys)
        return len(keys)
