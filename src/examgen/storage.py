"""Persistence of user uploads on disk and the short-lived upload handle store."""
from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Final, Optional, Union
from uuid import uuid4

from cachetools import TTLCache
from fastapi import UploadFile

from .errors import UnknownUpload

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    # Remove any path components and replace disallowed characters.
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


async def save_upload(upload: UploadFile, directory: Union[str, Path]) -> Path:
    """Persist an uploaded file under ``directory`` with a unique name."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)

    sanitized_name = _sanitize_filename(upload.filename or "")
    base = Path(sanitized_name).stem or "upload"
    suffix = Path(sanitized_name).suffix.lower()
    unique_name = f"{base}-{uuid4().hex}{suffix}" if suffix else f"{base}-{uuid4().hex}"
    destination = target_dir / unique_name

    contents = await upload.read()
    destination.write_bytes(contents)
    await upload.seek(0)

    return destination.resolve()


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased extension (with the dot) of the client-supplied file name."""
    return Path(filename or "").suffix.lower()


def discard_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        LOGGER.warning("Failed to delete stored upload %s: %s", path, error)


@dataclass(frozen=True, slots=True)
class StoredUpload:
    """A file kept on disk between two calls of a multi-step creation flow."""

    file_id: str
    path: Path
    extension: str
    original_name: Optional[str] = None


class _ExpiringUploads(TTLCache):
    """TTL cache that deletes the backing file of evicted or expired entries."""

    def popitem(self):  # type: ignore[override]
        key, stored = super().popitem()
        LOGGER.info("Evicting stored upload %s", key)
        discard_file(stored.path)
        return key, stored

    def expire(self, time=None):  # type: ignore[override]
        expired = super().expire(time)
        for key, stored in expired or ():
            LOGGER.info("Stored upload %s expired", key)
            discard_file(stored.path)
        return expired


class UploadStore:
    """Opaque-id handle store for uploads, bounded by capacity and TTL.

    Entries are single use: :meth:`pop` removes the entry and hands ownership
    of the file to the caller.
    """

    def __init__(
        self,
        *,
        capacity: int = 128,
        ttl_seconds: float = 3600.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._uploads = _ExpiringUploads(maxsize=capacity, ttl=ttl_seconds, timer=timer)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._uploads.expire()
            return len(self._uploads)

    def put(self, path: Path, extension: str, original_name: Optional[str] = None) -> str:
        file_id = uuid4().hex
        with self._lock:
            self._uploads[file_id] = StoredUpload(
                file_id=file_id, path=Path(path), extension=extension, original_name=original_name
            )
        LOGGER.info("Stored upload %s (%s)", file_id, extension)
        return file_id

    def get(self, file_id: str) -> StoredUpload:
        with self._lock:
            self._uploads.expire()
            stored = self._uploads.get(file_id)
        if stored is None:
            raise UnknownUpload(file_id)
        return stored

    def pop(self, file_id: str) -> StoredUpload:
        with self._lock:
            self._uploads.expire()
            stored = self._uploads.pop(file_id, None)
        if stored is None:
            raise UnknownUpload(file_id)
        return stored


__all__ = [
    "StoredUpload",
    "UploadStore",
    "discard_file",
    "file_extension",
    "save_upload",
]
