"""
Object Storage

Public-file storage used for generated assets (QR code images).

Implementations:
- SupabaseStorage: hosted bucket, public URLs served by Supabase
- LocalStorage: filesystem directory behind a static base URL (development)
"""

import functools
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from supabase import Client, create_client

from basecore.settings import get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Upload or URL resolution failed."""


class StorageBackend(ABC):
    """Minimal interface for storing a public object."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    def public_url(self, path: str) -> str:
        ...

    def upload_public(self, path: str, data: bytes, content_type: str) -> str:
        """Upload an object and return its public URL."""
        self.upload(path, data, content_type)
        return self.public_url(path)


class SupabaseStorage(StorageBackend):
    """Supabase Storage bucket."""

    def __init__(self, client: Client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self.client.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error(
                f"Failed to upload {path} to bucket {self.bucket}: {e}",
                extra={"bucket": self.bucket, "path": path},
            )
            raise StorageError(f"Failed to upload {path}: {e}") from e

    def public_url(self, path: str) -> str:
        return self.client.storage.from_(self.bucket).get_public_url(path)


class LocalStorage(StorageBackend):
    """Writes objects below a directory and serves them from base_url."""

    def __init__(self, root: str | Path, base_url: str, bucket: str):
        self.root = Path(root) / bucket
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        target = self.root / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {target}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at {target}", extra={"content_type": content_type})

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{self.bucket}/{path}"


@functools.lru_cache()
def get_storage() -> StorageBackend:
    """Get the configured storage backend (cached)."""
    settings = get_settings()

    if settings.STORAGE_BACKEND == "supabase":
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        return SupabaseStorage(client, settings.STORAGE_BUCKET)

    return LocalStorage(
        settings.LOCAL_STORAGE_DIR,
        settings.LOCAL_STORAGE_BASE_URL,
        settings.STORAGE_BUCKET,
    )
