"""Blob storage adapters: Google Cloud Storage, local filesystem, in-memory.

Keys are bucket-relative paths (e.g. ``unreal-envs/1700000000000_scene.pak``).
Keys are write-once: saving over an existing key raises StorageFailure.
Every adapter raises StorageFailure for IO, network and signing errors.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union
from urllib.parse import quote, unquote, urlparse

from eldercare.config import runtime_config

logger = logging.getLogger(__name__)

Expiry = Union[datetime, timedelta]

# V4 signatures are capped at seven days
V4_MAX_LIFETIME = timedelta(days=7)


class StorageFailure(RuntimeError):
    """Raised when the blob store cannot complete an operation."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class BlobStore(Protocol):
    """Protocol for blob store adapters."""

    def save(self, key: str, payload: bytes, content_type: Optional[str]) -> None:
        """Write payload under key."""
        ...

    def issue_retrieval_url(self, key: str, expiry: Expiry) -> str:
        """Return a URL allowing unauthenticated GET of key until expiry."""
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


def validate_key(key: str) -> str:
    if not key or not key.strip():
        raise StorageFailure("storage key is empty", key=key)
    if key.startswith("/"):
        raise StorageFailure(f"storage key must be relative: {key}", key=key)
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise StorageFailure(f"storage key has an invalid segment: {key}", key=key)
    return key


def expiry_to_datetime(expiry: Expiry, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if isinstance(expiry, timedelta):
        return now + expiry
    if expiry.tzinfo is None:
        return expiry.replace(tzinfo=timezone.utc)
    return expiry


class GcsBlobStore:
    """Google Cloud Storage adapter bound to a single bucket."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        project: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self._bucket_name = bucket or runtime_config.get_environments_bucket()
        if not self._bucket_name:
            raise RuntimeError("ENVIRONMENTS_BUCKET required for GCS blob store")
        if client is None:
            try:
                from google.cloud import storage
            except Exception as exc:
                raise RuntimeError("google-cloud-storage is required for GCS blob store") from exc
            client = storage.Client(project=project or runtime_config.get_gcs_project())
        self._client = client
        self._bucket = self._client.bucket(self._bucket_name)

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def save(self, key: str, payload: bytes, content_type: Optional[str]) -> None:
        validate_key(key)
        try:
            blob = self._bucket.blob(key)
            # generation 0 only matches when no live object exists at key
            blob.upload_from_string(
                payload,
                content_type=content_type or "application/octet-stream",
                if_generation_match=0,
            )
        except Exception as exc:
            logger.error("Failed to store GCS object %s: %s", key, exc)
            raise StorageFailure(f"Failed to store object: {exc}", key=key) from exc
        logger.info("Stored GCS object: gs://%s/%s (%d bytes)", self._bucket_name, key, len(payload))

    def issue_retrieval_url(self, key: str, expiry: Expiry) -> str:
        validate_key(key)
        expires_at = expiry_to_datetime(expiry)
        try:
            blob = self._bucket.blob(key)
            if not blob.exists():
                raise StorageFailure(f"object does not exist: {key}", key=key)
            version = "v4" if expires_at - datetime.now(timezone.utc) <= V4_MAX_LIFETIME else "v2"
            return blob.generate_signed_url(version=version, expiration=expires_at, method="GET")
        except StorageFailure:
            raise
        except Exception as exc:
            logger.error("Failed to sign GCS object %s: %s", key, exc)
            raise StorageFailure(f"Failed to generate signed URL: {exc}", key=key) from exc

    def exists(self, key: str) -> bool:
        try:
            return bool(self._bucket.blob(key).exists())
        except Exception as exc:
            raise StorageFailure(f"Failed to stat object: {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except Exception as exc:
            logger.error("Failed to delete GCS object %s: %s", key, exc)
            raise StorageFailure(f"Failed to delete object: {exc}", key=key) from exc


class FilesystemBlobStore:
    """Local directory fallback to keep dev working without a bucket."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self._root = Path(base_dir or runtime_config.get_blob_fs_dir())
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._root / validate_key(key)

    def save(self, key: str, payload: bytes, content_type: Optional[str]) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "xb") as fh:
                fh.write(payload)
        except FileExistsError as exc:
            raise StorageFailure(f"object already exists: {key}", key=key) from exc
        except OSError as exc:
            raise StorageFailure(f"Failed to write {path}: {exc}", key=key) from exc

    def issue_retrieval_url(self, key: str, expiry: Expiry) -> str:
        path = self._path(key)
        if not path.exists():
            raise StorageFailure(f"object does not exist: {key}", key=key)
        # local files never expire; the expiry is accepted for interface parity
        return path.resolve().as_uri()

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Failed to delete {path}: {exc}", key=key) from exc


@dataclass
class StoredBlob:
    payload: bytes
    content_type: Optional[str]
    stored_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryBlobStore:
    """Stores blobs in-memory for tests and local runs.

    Issued URLs use the ``memory://`` scheme and can be dereferenced with
    ``open_url`` while unexpired.
    """

    def __init__(self, bucket: str = "memory-bucket") -> None:
        self.bucket_name = bucket
        self.blobs: Dict[str, StoredBlob] = {}

    def save(self, key: str, payload: bytes, content_type: Optional[str]) -> None:
        validate_key(key)
        blob = StoredBlob(payload=bytes(payload), content_type=content_type)
        # setdefault keeps check-and-insert atomic across executor threads
        if self.blobs.setdefault(key, blob) is not blob:
            raise StorageFailure(f"object already exists: {key}", key=key)

    def issue_retrieval_url(self, key: str, expiry: Expiry) -> str:
        validate_key(key)
        if key not in self.blobs:
            raise StorageFailure(f"object does not exist: {key}", key=key)
        expires_at = int(expiry_to_datetime(expiry).timestamp())
        return f"memory://{self.bucket_name}/{quote(key)}?expires={expires_at}"

    def open_url(self, url: str, now: Optional[datetime] = None) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme != "memory" or parsed.netloc != self.bucket_name:
            raise StorageFailure(f"URL not issued by this store: {url}")
        params = dict(part.split("=", 1) for part in parsed.query.split("&") if "=" in part)
        now = now or datetime.now(timezone.utc)
        if int(params.get("expires", "0")) < now.timestamp():
            raise StorageFailure(f"URL expired: {url}")
        key = unquote(parsed.path.lstrip("/"))
        blob = self.blobs.get(key)
        if blob is None:
            raise StorageFailure(f"object does not exist: {key}", key=key)
        return blob.payload

    def exists(self, key: str) -> bool:
        return key in self.blobs

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


def build_blob_store(backend: Optional[str] = None) -> BlobStore:
    backend = (backend or runtime_config.get_blob_backend()).lower()
    if backend == "gcs":
        return GcsBlobStore()
    if backend == "filesystem":
        return FilesystemBlobStore()
    if backend == "memory":
        return InMemoryBlobStore()
    raise RuntimeError(f"BLOB_BACKEND must be one of gcs|filesystem|memory. Got: '{backend}'")
