"""Content blob store — opaque-path keyed byte storage.

The core never interprets blob paths; it only passes around the strings the
store hands back from ``write``.  ``LocalBlobStore`` keeps blobs as files
under a single root directory.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .types import StoredBlob
from .utils import guess_mime_type, unique_blob_name

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


@runtime_checkable
class BlobStore(Protocol):
    """Interface every content store must implement."""

    async def exists(self, path: str) -> bool: ...

    async def size(self, path: str) -> int: ...

    async def read_bytes(self, path: str) -> bytes: ...

    def stream(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]: ...

    async def delete(self, path: str) -> bool: ...

    async def write(
        self,
        data: bytes | AsyncIterable[bytes],
        original_name: str,
        mimetype: str | None = None,
    ) -> StoredBlob: ...


class LocalBlobStore:
    """Blob store on the local disk.

    Blob paths are relative to ``root``.  ``_resolve`` keeps every access
    inside ``root``, rejecting traversal attempts.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve(self, path: str) -> Path:
        rel = path.lstrip("/")
        if not rel:
            raise PermissionError("Empty blob path")
        resolved = (self.root / rel).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise PermissionError(
                f"Path traversal detected: {path} resolves outside blob root"
            ) from None
        return resolved

    # =========================================================================
    # Reads
    # =========================================================================

    async def exists(self, path: str) -> bool:
        try:
            resolved = self._resolve(path)
        except PermissionError:
            return False
        return await asyncio.to_thread(resolved.is_file)

    async def size(self, path: str) -> int:
        resolved = self._resolve(path)
        stat = await asyncio.to_thread(resolved.stat)
        return stat.st_size

    async def read_bytes(self, path: str) -> bytes:
        resolved = self._resolve(path)
        return await asyncio.to_thread(resolved.read_bytes)

    async def stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield the blob in chunks of at most *chunk_size* bytes."""
        resolved = self._resolve(path)
        handle = await asyncio.to_thread(resolved.open, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await asyncio.to_thread(handle.close)

    # =========================================================================
    # Writes
    # =========================================================================

    async def delete(self, path: str) -> bool:
        """Delete a blob.  Returns False when it was already gone."""
        resolved = self._resolve(path)
        try:
            await asyncio.to_thread(resolved.unlink)
        except FileNotFoundError:
            return False
        return True

    async def write(
        self,
        data: bytes | AsyncIterable[bytes],
        original_name: str,
        mimetype: str | None = None,
    ) -> StoredBlob:
        """Store *data* under a fresh unique name and describe the result."""
        filename = unique_blob_name(original_name)
        target = self._resolve(filename)
        size = 0
        handle = await asyncio.to_thread(target.open, "wb")
        try:
            if isinstance(data, bytes | bytearray):
                await asyncio.to_thread(handle.write, data)
                size = len(data)
            else:
                async for chunk in data:
                    await asyncio.to_thread(handle.write, chunk)
                    size += len(chunk)
        except BaseException:
            await asyncio.to_thread(handle.close)
            await asyncio.to_thread(target.unlink, True)
            raise
        await asyncio.to_thread(handle.close)
        logger.debug("Stored blob %s (%d bytes) for %s", filename, size, original_name)
        return StoredBlob(
            filename=filename,
            path=filename,
            size=size,
            mimetype=mimetype or guess_mime_type(original_name),
        )
