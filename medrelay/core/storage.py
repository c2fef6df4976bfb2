"""
Object storage for report files.

Objects live under ``<STORAGE_ROOT>/<bucket>/<path>``. Paths are the
slash-separated keys built by the report service; they are resolved against
the bucket directory and may never escape it.
"""
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import logging
import shutil

from .config import settings
from .security import build_signed_url, create_signed_token

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised for any failure talking to the object store."""


class ReportStorage:
    def __init__(self, root: str, bucket: str = "reports"):
        self.bucket_dir = Path(root) / bucket

    def _resolve(self, path: str) -> Path:
        bucket_dir = self.bucket_dir.resolve()
        target = (bucket_dir / path).resolve()
        if target == bucket_dir or bucket_dir not in target.parents:
            raise StorageError(f"Invalid object path: {path!r}")
        return target

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def upload(self, path: str, content: bytes) -> str:
        """Store ``content`` at ``path``; an existing object is never overwritten."""
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.info(f"Stored object {path} ({len(content)} bytes)")
        return path

    def move(self, source: str, destination: str) -> str:
        src = self._resolve(source)
        dst = self._resolve(destination)
        if not src.is_file():
            raise StorageError(f"Object not found: {source}")
        if dst.exists():
            raise StorageError(f"Object already exists: {destination}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dst))
        except OSError as e:
            raise StorageError(f"Failed to move {source} to {destination}: {e}") from e
        logger.info(f"Moved object {source} -> {destination}")
        return destination

    def open_path(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}")
        return target

    def create_signed_url(
        self,
        path: str,
        expires_in: timedelta,
        now: Optional[datetime] = None
    ) -> str:
        if not self.exists(path):
            raise StorageError(f"Object not found: {path}")
        return build_signed_url(create_signed_token(path, expires_in, now=now))


storage = ReportStorage(settings.STORAGE_ROOT, settings.STORAGE_BUCKET)

def get_storage() -> ReportStorage:
    """Get the process-wide object store."""
    return storage
