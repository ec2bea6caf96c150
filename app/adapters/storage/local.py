"""Local filesystem storage adapter."""

import logging
from pathlib import Path
from uuid import UUID

import aiofiles
import aiofiles.os

from app.ports.storage import StoragePort

logger = logging.getLogger(__name__)


class LocalStorageAdapter(StoragePort):
    """Store cover images on the local filesystem, served under /uploads."""

    def __init__(self, base_path: str, public_prefix: str = "/uploads") -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self._prefix = public_prefix.rstrip("/")
        logger.info("LocalStorage initialized at: %s", self._base.resolve())

    async def save(self, file_id: UUID, content: bytes, extension: str) -> str:
        """Save file to local disk. Returns the file name relative to the base path."""
        key = f"{file_id}.{extension}"
        async with aiofiles.open(self._base / key, "wb") as f:
            await f.write(content)
        logger.info("Saved file: %s (%d bytes)", key, len(content))
        return key

    async def delete(self, key: str) -> None:
        target = self._base / key
        if target.exists():
            await aiofiles.os.remove(str(target))
            logger.info("Deleted file: %s", key)
        else:
            logger.warning("File not found for deletion: %s", key)

    def url_for(self, key: str) -> str:
        return f"{self._prefix}/{key}"
