from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from fastapi import UploadFile

logger = logging.getLogger(__name__)

_READ_CHUNK = 1024 * 1024


class UploadTooLargeError(Exception):
    def __init__(self, filename: str, max_bytes: int) -> None:
        super().__init__(f"{filename} exceeds the {max_bytes} byte upload limit")
        self.filename = filename
        self.max_bytes = max_bytes


class ImageStorage:
    """Shared on-disk area for uploads, archive extracts and processed images.

    Every file lives directly under ``root`` and is published under
    ``url_prefix``; callers only ever see ``/uploads/<name>`` style URLs.
    """

    def __init__(self, root: str | Path, url_prefix: str = "/uploads") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def unique_name(self, prefix: str, filename: str | None = None) -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        return f"{prefix}-{uuid.uuid4().hex}{ext}"

    def path_for(self, name: str) -> Path:
        return self.root / name

    def url_for(self, path: Path) -> str:
        return f"{self.url_prefix}/{path.name}"

    def path_from_url(self, url: str) -> Path:
        return self.root / url.rsplit("/", 1)[-1]

    def write_bytes(self, name: str, data: bytes) -> Path:
        self.ensure()
        path = self.path_for(name)
        path.write_bytes(data)
        return path

    async def save_upload(self, upload: UploadFile, *, prefix: str, max_bytes: int) -> Path:
        """Stream an uploaded file to a fresh, uniquely named file."""
        self.ensure()
        path = self.path_for(self.unique_name(prefix, upload.filename))
        written = 0
        try:
            with path.open("wb") as handle:
                while chunk := await upload.read(_READ_CHUNK):
                    written += len(chunk)
                    if written > max_bytes:
                        raise UploadTooLargeError(upload.filename or path.name, max_bytes)
                    handle.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    def remove(self, path: Path | None) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove temporary file %s", path, exc_info=True)
