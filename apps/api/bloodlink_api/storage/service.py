"""Object storage for uploaded certificate files.

Uses MinIO (S3-compatible) in deployed environments and a local directory
for development. Locators are object keys of the form
``{donor_id}/{timestamp}_{file_name}``; keys are sanitized so they cannot
escape the bucket or the storage root.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Optional

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from bloodlink_api.errors import UpstreamUnavailableError, ValidationError
from bloodlink_api.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(file_name: str) -> str:
    """Replace anything outside ``[A-Za-z0-9._-]`` with an underscore."""
    return _UNSAFE_CHARS.sub("_", file_name)


def build_object_key(owner_id: str, file_name: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Build object key for a certificate upload.

    Format: {owner_id}/{timestamp_ms}_{sanitized_file_name}

    Args:
        owner_id: Uploading donor id
        file_name: Original file name
        timestamp_ms: Upload time in milliseconds (defaults to now)

    Returns:
        Object key (safe, no path traversal possible)
    """
    if not owner_id or not file_name:
        raise ValidationError("owner_id and file_name are required")
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{sanitize_file_name(owner_id)}/{timestamp_ms}_{sanitize_file_name(file_name)}"


class FileStore(ABC):
    """Upload/download contract for certificate bytes."""

    @abstractmethod
    def upload(
        self, data: bytes, owner_id: str, file_name: str, content_type: str = "application/octet-stream"
    ) -> str:
        """Store bytes and return their locator."""
        pass

    @abstractmethod
    def download(self, locator: str) -> bytes:
        """Return stored bytes; raises FileNotFoundError for unknown locators."""
        pass

    @abstractmethod
    def delete(self, locator: str) -> None:
        """Remove stored bytes; unknown locators are ignored."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass


class MinioFileStore(FileStore):
    """Certificate storage in a MinIO/S3 bucket."""

    def __init__(self, client: Minio, bucket: str):
        """Initialize storage with a MinIO client."""
        self.client = client
        self.bucket = bucket
        self._bucket_checked = False

    def _ensure_bucket(self):
        """Ensure bucket exists."""
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_checked = True

    def upload(
        self, data: bytes, owner_id: str, file_name: str, content_type: str = "application/octet-stream"
    ) -> str:
        object_key = build_object_key(owner_id, file_name)
        try:
            self._ensure_bucket()
            self.client.put_object(
                self.bucket,
                object_key,
                BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except (S3Error, HTTPError, OSError) as e:
            logger.error(f"Failed to upload object {object_key}: {e}")
            raise UpstreamUnavailableError("file store", str(e)) from e
        logger.debug(f"Uploaded object: {object_key} ({len(data)} bytes)")
        return object_key

    def download(self, locator: str) -> bytes:
        try:
            response = self.client.get_object(self.bucket, locator)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                raise FileNotFoundError(f"Object not found: {locator}")
            logger.error(f"Failed to retrieve object {locator}: {e}")
            raise UpstreamUnavailableError("file store", str(e)) from e
        except (HTTPError, OSError) as e:
            logger.error(f"Failed to retrieve object {locator}: {e}")
            raise UpstreamUnavailableError("file store", str(e)) from e

    def delete(self, locator: str) -> None:
        try:
            self.client.remove_object(self.bucket, locator)
        except (S3Error, HTTPError, OSError) as e:
            logger.error(f"Failed to delete object {locator}: {e}")
            raise UpstreamUnavailableError("file store", str(e)) from e
        logger.debug(f"Deleted object: {locator}")

    def is_available(self) -> bool:
        try:
            return self.client.bucket_exists(self.bucket)
        except (S3Error, HTTPError, OSError) as e:
            logger.error(f"Object storage check failed: {e}")
            return False


class LocalFileStore(FileStore):
    """Certificate storage in a local directory (development and tests)."""

    def __init__(self, root: str):
        """Initialize storage rooted at a directory."""
        self.root = Path(root).resolve()

    def _path_for(self, locator: str) -> Path:
        path = (self.root / locator).resolve()
        if self.root not in path.parents:
            raise ValidationError(f"Invalid file locator: {locator}")
        return path

    def upload(
        self, data: bytes, owner_id: str, file_name: str, content_type: str = "application/octet-stream"
    ) -> str:
        object_key = build_object_key(owner_id, file_name)
        path = self._path_for(object_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to write {object_key}: {e}")
            raise UpstreamUnavailableError("file store", str(e)) from e
        return object_key

    def download(self, locator: str) -> bytes:
        path = self._path_for(locator)
        if not path.is_file():
            raise FileNotFoundError(f"Object not found: {locator}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise UpstreamUnavailableError("file store", str(e)) from e

    def delete(self, locator: str) -> None:
        path = self._path_for(locator)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise UpstreamUnavailableError("file store", str(e)) from e

    def is_available(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return True
        except OSError:
            return False


@lru_cache()
def get_file_store() -> FileStore:
    """Get file store instance based on settings."""
    provider = settings.storage_provider.lower()

    if provider == "local":
        return LocalFileStore(settings.local_storage_path)
    elif provider == "minio":
        client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_use_ssl,
        )
        return MinioFileStore(client, settings.minio_bucket)
    else:
        raise ValueError(f"Unknown storage provider: {provider}")
