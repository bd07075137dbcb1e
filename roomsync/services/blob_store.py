# roomsync/services/blob_store.py
from __future__ import annotations

import abc
from pathlib import Path
from urllib.parse import quote

from roomsync.core.logging import get_logger

logger = get_logger(__name__)


class BlobStore(abc.ABC):
    """Content store for message attachments."""

    @abc.abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store data under key and return the stored path."""

    @abc.abstractmethod
    def public_url(self, path: str) -> str:
        ...


class LocalBlobStore(BlobStore):
    """
    Stores blobs as files in one directory.

    Uploads never overwrite: an existing key raises FileExistsError. Keys
    are flattened to a single path component.
    """

    def __init__(self, root: str | Path, base_url: str = "/attachments") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        name = Path(path).name
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid blob key: {path!r}")
        return self.root / name

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        target = self._resolve(key)
        self.root.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as f:
            f.write(data)
        logger.info(f"✓ Stored blob {target.name} ({len(data)} bytes, {content_type})")
        return target.name

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"
