"""Object storage for rendered PDFs.

Keys follow ``pdfs/{slug}/{slug}-v{version}.pdf`` so every published version
keeps its own immutable object.
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


def build_pdf_key(slug: str, version: int = 1) -> str:
    return f"pdfs/{slug}/{slug}-v{version}.pdf"


@dataclass
class ObjectInfo:
    key: str
    etag: str
    size_bytes: int
    content_type: str
    uploaded_at: str
    url: str


class ObjectStore(Protocol):
    """Protocol for blob storage (local disk, S3-compatible buckets, fakes)."""

    async def put(self, key: str, data: bytes, content_type: str) -> ObjectInfo:
        ...

    async def head(self, key: str) -> Optional[ObjectInfo]:
        ...

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def delete(self, key: str) -> bool:
        ...

    def url_for(self, key: str) -> str:
        ...


class LocalObjectStore:
    """ObjectStore on the local filesystem, with a JSON metadata sidecar per object.

    Args:
        root: Directory objects are written under
        public_url: Base URL the directory is served from; file:// URLs when empty
    """

    def __init__(self, root, public_url: str = ""):
        self.root = Path(root).expanduser()
        self.public_url = public_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Object key escapes storage root: {key}")
        return path

    def url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        return (self.root / key).resolve().as_uri()

    def _put_sync(self, key: str, data: bytes, content_type: str) -> ObjectInfo:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        info = ObjectInfo(
            key=key,
            etag=hashlib.md5(data).hexdigest(),
            size_bytes=len(data),
            content_type=content_type,
            uploaded_at=datetime.now(timezone.utc).isoformat(),
            url=self.url_for(key),
        )
        try:
            path.with_name(path.name + META_SUFFIX).write_text(json.dumps(asdict(info), indent=2))
        except OSError:
            # An object without its sidecar is invisible to head(); remove it
            path.unlink(missing_ok=True)
            raise
        return info

    async def put(self, key: str, data: bytes, content_type: str) -> ObjectInfo:
        info = await asyncio.to_thread(self._put_sync, key, data, content_type)
        logger.info(f"Stored {key} ({info.size_bytes} bytes)")
        return info

    def _head_sync(self, key: str) -> Optional[ObjectInfo]:
        path = self._path(key)
        meta = path.with_name(path.name + META_SUFFIX)
        if not path.exists() or not meta.exists():
            return None
        return ObjectInfo(**json.loads(meta.read_text()))

    async def head(self, key: str) -> Optional[ObjectInfo]:
        return await asyncio.to_thread(self._head_sync, key)

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return await asyncio.to_thread(path.read_bytes)

    def _delete_sync(self, key: str) -> bool:
        path = self._path(key)
        existed = path.exists()
        path.unlink(missing_ok=True)
        path.with_name(path.name + META_SUFFIX).unlink(missing_ok=True)
        return existed

    async def delete(self, key: str) -> bool:
        """Delete an object and its sidecar. Returns False if it did not exist."""
        return await asyncio.to_thread(self._delete_sync, key)
