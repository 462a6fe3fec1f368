"""
Asset storage for group icons and user avatars.

Services depend only on the ``AssetStorage`` protocol: upload bytes and
get back a storage key, delete by key, and turn a key into a public or
time-limited signed URL.  ``LocalAssetStorage`` keeps assets on disk
under ``MEDIA_ROOT``; serving them is left to whatever fronts that
directory.
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode
from uuid import uuid4

from groupchat.config import settings
from groupchat.errors import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AssetUpload:
    """Raw bytes received from a client along with their declared type."""

    data: bytes
    content_type: str | None = None


@dataclass(slots=True)
class StoredAsset:
    key: str
    size: int
    acl: str


class AssetStorage(Protocol):
    async def upload(self, data: bytes, *, name: str, acl: str = "private") -> StoredAsset: ...

    async def delete(self, key: str) -> None: ...

    def get_url(self, key: str) -> str: ...

    def get_signed_url(self, key: str, *, expiry_seconds: int) -> str: ...


def asset_name(content_type: str | None) -> str:
    """Return a fresh ``<uuid4>.<ext>`` name, the extension taken from *content_type*."""
    extension = mimetypes.guess_extension(content_type or "") or ".bin"
    return f"{uuid4()}{extension}"


def sign_asset(key: str, expires: int, secret: str) -> str:
    message = f"{key}:{expires}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class LocalAssetStorage:
    def __init__(
        self,
        root: str | Path | None = None,
        base_url: str | None = None,
        secret: str | None = None,
        max_size: int | None = None,
    ) -> None:
        self.root = Path(root or settings.MEDIA_ROOT)
        self.base_url = (base_url or settings.ASSET_BASE_URL).rstrip("/")
        self._secret = secret or settings.SECRET_KEY
        self.max_size = max_size or settings.MAX_UPLOAD_SIZE

    def _path(self, key: str) -> Path:
        candidate = (self.root / key).resolve()
        if not candidate.is_relative_to(self.root.resolve()):
            raise ValueError(f"Invalid asset key {key!r}")
        return candidate

    async def upload(self, data: bytes, *, name: str, acl: str = "private") -> StoredAsset:
        if len(data) > self.max_size:
            raise UpstreamFailure("Asset exceeds allowed size")
        path = self._path(name)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise UpstreamFailure(f"Could not store asset {name}") from exc
        logger.debug("Stored asset %s (%d bytes, acl=%s)", name, len(data), acl)
        return StoredAsset(key=name, size=len(data), acl=acl)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise UpstreamFailure(f"Could not delete asset {key}") from exc
        logger.debug("Deleted asset %s", key)

    def get_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def get_signed_url(self, key: str, *, expiry_seconds: int) -> str:
        expires = int(time.time()) + expiry_seconds
        query = urlencode({"expires": expires, "signature": sign_asset(key, expires, self._secret)})
        return f"{self.base_url}/{key}?{query}"
