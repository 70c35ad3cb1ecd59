"""
Blob storage for image content.

The image service only depends on the :class:`BlobStorage` protocol. The
filesystem implementation below is what the application and the tests use;
object-store clients can be plugged in by implementing the same protocol.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union, runtime_checkable

from imagevault.core.config import StorageConfig
from imagevault.core.guard import not_empty

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStorage(Protocol):
    """Key/value store for binary objects."""

    async def upload(self, data: bytes, name: str, content_type: Optional[str] = None) -> Tuple[str, str]:
        """Store an object under a new unique name.

        Returns:
            Tuple of (public URL, stored name)
        """
        ...

    async def download(self, name: str) -> bytes: ...

    async def delete(self, name: str) -> None: ...

    async def exists(self, name: str) -> bool: ...

    async def get_url(self, name: str) -> str: ...


class LocalBlobStorage:
    """Stores blobs as files below a root directory."""

    def __init__(self, root: Union[str, Path], public_url: str) -> None:
        """Initialize the storage.

        Args:
            root: Directory holding the blobs, created when missing
            public_url: Base URL the blobs are served under
        """
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: StorageConfig) -> "LocalBlobStorage":
        return cls(config.root, config.public_url)

    def _path(self, name: str) -> Path:
        not_empty(name, "name")
        if Path(name).name != name:
            raise ValueError(f"Invalid blob name: {name!r}")
        return self.root / name

    async def upload(self, data: bytes, name: str, content_type: Optional[str] = None) -> Tuple[str, str]:
        suffix = Path(name).suffix.lower()
        stored_name = f"{uuid.uuid4().hex}{suffix}"
        await asyncio.to_thread(self._path(stored_name).write_bytes, data)
        logger.info(f"Stored blob {stored_name} ({len(data)} bytes, {content_type or 'unknown type'})")
        return await self.get_url(stored_name), stored_name

    async def download(self, name: str) -> bytes:
        """Read a blob; a missing blob reads as empty bytes."""
        path = self._path(name)
        if not await asyncio.to_thread(path.exists):
            logger.debug(f"Blob {name} not found")
            return b""
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, name: str) -> None:
        await asyncio.to_thread(self._path(name).unlink, True)
        logger.info(f"Deleted blob {name}")

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self._path(name).is_file)

    async def get_url(self, name: str) -> str:
        self._path(name)
        return f"{self.public_url}/{name}"
