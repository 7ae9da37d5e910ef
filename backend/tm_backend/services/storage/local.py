"""Local (disk) storage: files under a base directory, addressed by relative keys."""
import asyncio
import contextlib
import logging
import shutil
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

import aiofiles
import aiofiles.os

from tm_backend.services.storage.base import (
    DEFAULT_CHUNK_BYTES,
    DEFAULT_CONTENT_TYPE,
    FileStream,
    ObjectNotFoundError,
    StorageBackend,
    StorageWriteError,
)

logger = logging.getLogger(__name__)


class LocalStorage(StorageBackend):
    """Disk storage rooted at root. Keys never escape the root; no content type is persisted."""

    def __init__(
        self,
        root: str | Path,
        chunk_size: int = DEFAULT_CHUNK_BYTES,
        namespaces: tuple[str, ...] = (),
    ) -> None:
        self._root = Path(root).resolve()
        self._chunk_size = chunk_size
        for ns in namespaces:
            (self._root / ns).mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        """Resolve key under root. Raise ValueError on traversal or on the root itself."""
        resolved = (self._root / key.lstrip("/")).resolve()
        if resolved == self._root or not resolved.is_relative_to(self._root):
            raise ValueError(f"Invalid storage key: {key}")
        return resolved

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        # Local files don't store content_type; reads serve octet-stream
        try:
            path = self._path(key)
        except ValueError as e:
            raise StorageWriteError(f"Failed to write {key}") from e
        # Write beside the target and rename, so a failed write never leaves a partial file under key
        tmp = path.with_name(f".{path.name}.{uuid4().hex}.part")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageWriteError(f"Failed to write {key}") from e

    async def get_stream(self, key: str) -> FileStream:
        try:
            path = self._path(key)
        except ValueError as e:
            raise ObjectNotFoundError(f"Object not found: {key}") from e
        if not await aiofiles.os.path.isfile(path):
            raise ObjectNotFoundError(f"Object not found: {key}")
        return FileStream(chunks=self._iter_file(path), content_type=DEFAULT_CONTENT_TYPE)

    async def _iter_file(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(self._chunk_size):
                yield chunk

    async def delete(self, key: str) -> None:
        path = self._path(key)
        if await aiofiles.os.path.isfile(path):
            await aiofiles.os.remove(path)
        else:
            logger.debug("Local delete: %s already absent", key)

    async def delete_many(self, keys: list[str]) -> None:
        for key in keys:
            await self.delete(key)

    async def list_prefix(self, prefix: str) -> list[str]:
        """Keys of all files below the directory named by prefix (directory prefixes only)."""
        base = self._path(prefix.rstrip("/"))
        if not await aiofiles.os.path.isdir(base):
            return []
        files = await asyncio.to_thread(lambda: [p for p in base.rglob("*") if p.is_file()])
        return sorted(p.relative_to(self._root).as_posix() for p in files)

    async def delete_prefix(self, prefix: str) -> int:
        """Remove the whole directory tree named by prefix."""
        keys = await self.list_prefix(prefix)
        base = self._path(prefix.rstrip("/"))
        if await aiofiles.os.path.isdir(base):
            await asyncio.to_thread(shutil.rmtree, base)
        return len(keys)
