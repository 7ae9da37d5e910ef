"""Uploads gateway: store avatars and attachments, stream them back, best-effort deletes.

The backend (S3 or local disk) is chosen once from StorageConfig by
build_gateway(); callers only ever see external references such as
``/uploads/file/avatars/avatar-<uuid>.webp`` or
``/uploads/attachments/project_a/<uuid>-notes.txt``.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from uuid import uuid4

from tm_backend.core.logging_redaction import redact_for_log
from tm_backend.core.metrics import record_delete_failure, record_storage_write, record_stream
from tm_backend.services.images import AVATAR_CONTENT_TYPE, AVATAR_EXTENSION, render_avatar
from tm_backend.services.storage import get_storage
from tm_backend.services.storage import keys
from tm_backend.services.storage.base import (
    FileStream,
    ObjectNotFoundError,
    StorageBackend,
    StorageConfig,
    StorageWriteError,
)
from tm_backend.services.storage.local import LocalStorage

logger = logging.getLogger(__name__)

# (operation, target, error) for deletes that failed and were swallowed
DeleteFailureHook = Callable[[str, str, Exception], None]


class AttachmentKind(str, Enum):
    IMAGE = "IMAGE"
    FILE = "FILE"


@dataclass(frozen=True)
class FileBlob:
    """In-memory upload: bytes, declared MIME type, original filename."""

    data: bytes
    content_type: str
    filename: str


@dataclass(frozen=True)
class StoredAttachment:
    reference: str
    kind: AttachmentKind
    original_name: str


def classify_attachment(content_type: str | None) -> AttachmentKind:
    return AttachmentKind.IMAGE if (content_type or "").startswith("image/") else AttachmentKind.FILE


class StorageGateway:
    """Single entry point for upload storage; mode and backend are fixed at construction."""

    def __init__(
        self,
        backend: StorageBackend,
        *,
        remote: bool,
        legacy_local: LocalStorage | None = None,
        on_delete_failure: DeleteFailureHook | None = None,
    ) -> None:
        self._backend = backend
        self._remote = remote
        # Local tree used for local-style references; in local mode it is the backend itself
        self._local = legacy_local if remote else backend
        self._on_delete_failure = on_delete_failure or record_delete_failure

    @property
    def remote(self) -> bool:
        return self._remote

    @property
    def mode(self) -> str:
        return "s3" if self._remote else "local"

    # ----- Write path -----

    async def store_avatar(self, blob: FileBlob) -> str:
        """Crop/re-encode the image and store it under avatars/. Returns the external reference."""
        data = await asyncio.to_thread(render_avatar, blob.data)
        key = keys.avatar_key(f"avatar-{uuid4()}.{AVATAR_EXTENSION}")
        await self._put(keys.AVATARS, key, data, AVATAR_CONTENT_TYPE)
        return keys.external_reference(key, self._remote)

    async def store_attachment(self, blob: FileBlob, path_segments: list[str] | None = None) -> StoredAttachment:
        """Store bytes unchanged under attachments/<segments>/<uuid>-<name>."""
        segments = keys.sanitize_segments(path_segments)
        name = keys.original_basename(blob.filename)
        filename = f"{uuid4()}-{name}" if name else str(uuid4())
        key = keys.attachment_key(segments, filename)
        await self._put(keys.ATTACHMENTS, key, blob.data, blob.content_type)
        return StoredAttachment(
            reference=keys.external_reference(key, self._remote),
            kind=classify_attachment(blob.content_type),
            original_name=blob.filename,
        )

    async def _put(self, namespace: str, key: str, data: bytes, content_type: str | None) -> None:
        try:
            await self._backend.put(key, data, content_type)
        except StorageWriteError:
            record_storage_write(namespace, ok=False)
            logger.exception("Storage write failed for %s (%s)", key, self.mode)
            raise
        record_storage_write(namespace, ok=True)
        logger.info("Stored %s (%d bytes, %s)", key, len(data), self.mode)

    # ----- Read path -----

    async def get_file_stream(self, key: str) -> FileStream:
        """Open key for streaming. Raise ObjectNotFoundError before any bytes if it does not exist."""
        if not keys.in_known_namespace(key):
            record_stream(found=False)
            raise ObjectNotFoundError(f"Object not found: {key}")
        try:
            stream = await self._backend.get_stream(key)
        except ObjectNotFoundError:
            record_stream(found=False)
            raise
        record_stream(found=True)
        return stream

    # ----- Delete path (best effort: never raises) -----

    async def delete_file(self, reference: str) -> None:
        try:
            if self._remote:
                key = keys.proxy_key(reference) or keys.legacy_url_key(reference)
                if key is not None:
                    if not self._deletable(key, reference):
                        return
                    await self._backend.delete(key)
                    logger.info("Deleted s3 object %s", key)
                    return
            elif keys.is_absolute_url(reference):
                logger.warning("Ignoring delete of absolute URL %s in local mode", reference)
                return
            if self._local is None:
                logger.warning("No local uploads tree configured; skipping delete of %s", reference)
                return
            key = keys.local_key(reference)
            if not self._deletable(key, reference):
                return
            await self._local.delete(key)
        except Exception as e:
            self._report_delete_failure("delete_file", reference, e)

    def _deletable(self, key: str, reference: str) -> bool:
        # Only keys this gateway can issue; anything else in the bucket or tree is off limits
        if keys.in_known_namespace(key):
            return True
        logger.warning("Ignoring delete of %s: key %s is outside %s", reference, key, "/".join(keys.NAMESPACES))
        return False

    async def delete_folder(self, path_segments: list[str]) -> None:
        segments = keys.sanitize_segments(path_segments)
        if not segments:
            logger.warning("Refusing to delete the whole %s tree (no path segments)", keys.ATTACHMENTS)
            return
        prefix = keys.attachment_prefix(segments)
        try:
            removed = await self._backend.delete_prefix(prefix)
            logger.info("Deleted folder %s (%d objects, %s)", prefix, removed, self.mode)
        except Exception as e:
            self._report_delete_failure("delete_folder", prefix, e)

    def _report_delete_failure(self, operation: str, target: str, error: Exception) -> None:
        logger.warning("Best-effort %s failed for %s: %s", operation, target, error, exc_info=error)
        try:
            self._on_delete_failure(operation, target, error)
        except Exception:
            logger.exception("Delete failure hook raised for %s", target)


def build_gateway(
    config: StorageConfig,
    on_delete_failure: DeleteFailureHook | None = None,
) -> StorageGateway:
    """Pick the backend once from config. Incomplete S3 settings fall back to local disk."""
    backend = get_storage(config)
    remote = config.remote_enabled
    legacy_local = LocalStorage(config.uploads_dir, chunk_size=config.chunk_size) if remote else None
    logger.info("Uploads storage initialised: %s", redact_for_log(config.describe()))
    return StorageGateway(
        backend,
        remote=remote,
        legacy_local=legacy_local,
        on_delete_failure=on_delete_failure,
    )
