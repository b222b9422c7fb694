"""
Object storage adapter.

Stores generated PDFs under ``STORAGE_DIR/<bucket>/<object path>`` and hands
out HMAC-signed, expiring download URLs served by ``/api/storage/signed``.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
import time
from typing import Optional
from urllib.parse import urlencode

import aiofiles
import aiofiles.os

from fundhub.config import settings
from fundhub.errors import AuthorizationError, NotFoundError, UnexpectedError, ValidationError

logger = logging.getLogger(__name__)


class StorageError(UnexpectedError):
    """Raised when the storage backend fails to read or write an object."""


class LocalObjectStorage:
    """Bucket-style file storage on the local filesystem."""

    def __init__(self, base_dir: str, bucket: str, secret: str) -> None:
        self.bucket = bucket
        self.root = os.path.abspath(os.path.join(base_dir, bucket))
        self._secret = secret.encode("utf-8")

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path.lstrip("/")))
        if not full.startswith(self.root + os.sep):
            raise ValidationError(f"Invalid storage path: {path}")
        return full

    async def upload(self, path: str, data: bytes) -> str:
        """Write ``data`` to ``path`` (overwriting). Returns the object path."""
        if len(data) > settings.MAX_PDF_SIZE:
            raise ValidationError(
                f"File too large. Maximum size is {settings.MAX_PDF_SIZE // (1024 * 1024)} MB."
            )
        full = self._resolve(path)
        try:
            await aiofiles.os.makedirs(os.path.dirname(full), exist_ok=True)
            async with aiofiles.open(full, "wb") as out:
                await out.write(data)
        except OSError as exc:
            raise StorageError(f"Upload failed for {path}: {exc}") from exc
        logger.info("Stored %s/%s (%d bytes)", self.bucket, path, len(data))
        return path

    async def download(self, path: str) -> bytes:
        full = self._resolve(path)
        if not await aiofiles.os.path.exists(full):
            raise NotFoundError(f"Stored file not found: {path}")
        try:
            async with aiofiles.open(full, "rb") as src:
                return await src.read()
        except OSError as exc:
            raise StorageError(f"Download failed for {path}: {exc}") from exc

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(self._resolve(path))

    async def remove(self, path: str) -> None:
        """Delete an object. Missing objects are ignored."""
        full = self._resolve(path)
        try:
            await aiofiles.os.remove(full)
            logger.info("Removed %s/%s", self.bucket, path)
        except FileNotFoundError:
            logger.debug("Remove skipped, %s/%s does not exist", self.bucket, path)
        except OSError as exc:
            raise StorageError(f"Remove failed for {path}: {exc}") from exc

    # -- Signed URLs ----------------------------------------------------------

    def _sign(self, path: str, expires: int) -> str:
        message = f"{self.bucket}:{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def create_signed_url(self, path: str, ttl: Optional[int] = None) -> str:
        """Return a relative URL valid for ``ttl`` seconds."""
        self._resolve(path)
        expires = int(time.time()) + (ttl or settings.SIGNED_URL_TTL)
        query = urlencode({"path": path, "expires": expires, "signature": self._sign(path, expires)})
        return f"/api/storage/signed?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> None:
        """Raise AuthorizationError when the signature is wrong or expired."""
        if not hmac.compare_digest(self._sign(path, expires), signature):
            raise AuthorizationError("Invalid signature.")
        if expires < int(time.time()):
            raise AuthorizationError("Signed URL has expired.")


def get_storage() -> LocalObjectStorage:
    """FastAPI dependency returning the generated-documents bucket."""
    return LocalObjectStorage(
        settings.STORAGE_DIR,
        settings.GENERATED_DOCUMENTS_BUCKET,
        settings.SIGNED_URL_SECRET,
    )
