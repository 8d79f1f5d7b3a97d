from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from uuid import uuid4

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    pass


class ObjectStorageNotFoundError(ObjectStorageError):
    pass


@dataclass(frozen=True)
class StoredBlob:
    url: str
    pathname: str
    size: int
    etag: str
    content_type: str


class LocalObjectStorageAdapter:
    def __init__(self, root_dir: Path) -> None:
        self._root_dir = root_dir
        self._root_dir.mkdir(parents=True, exist_ok=True)

    def safe_object_path(self, object_key: str) -> Path:
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ObjectStorageError("invalid object key")
        if not key_path.parts:
            raise ObjectStorageError("object key is empty")
        return self._root_dir / Path(*key_path.parts)

    def put_bytes(self, object_key: str, content: bytes) -> str:
        path = self.safe_object_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return hashlib.sha256(content).hexdigest()

    def delete(self, object_key: str) -> None:
        path = self.safe_object_path(object_key)
        if not path.is_file():
            raise ObjectStorageNotFoundError("object not found")
        path.unlink()

    def get_path(self, object_key: str) -> Path:
        path = self.safe_object_path(object_key)
        if not path.is_file():
            raise ObjectStorageNotFoundError("object not found")
        return path


class ObjectStorageService:
    """Blob store: ``put(name, content) -> url`` and ``delete(url)``."""

    def __init__(self, root_dir: Path | None = None) -> None:
        backend = os.getenv("BLOB_STORAGE_BACKEND", "local").strip().lower()
        if backend != "local":
            raise ObjectStorageError(f"unsupported storage backend: {backend}")
        self._adapter = LocalObjectStorageAdapter(root_dir or Path(os.getenv("BLOB_STORAGE_ROOT", "data/blobs")))
        self.public_prefix = os.getenv("BLOB_PUBLIC_PREFIX", "/api/files").rstrip("/")

    @staticmethod
    def build_object_key(file_name: str) -> str:
        safe_file_name = Path(file_name).name.replace("\\", "_").replace("/", "_").strip()
        if not safe_file_name:
            safe_file_name = "upload.bin"
        return f"uploads/{uuid4().hex}/{safe_file_name}"

    def url_for(self, object_key: str) -> str:
        return f"{self.public_prefix}/{object_key}"

    def key_from_url(self, url: str) -> str:
        marker = f"{self.public_prefix}/"
        index = url.find(marker)
        if index < 0:
            raise ObjectStorageNotFoundError("url does not belong to this store")
        return url[index + len(marker) :]

    def put(self, file_name: str, content: bytes) -> StoredBlob:
        object_key = self.build_object_key(file_name)
        etag = self._adapter.put_bytes(object_key, content)
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        logger.info("stored blob %s (%d bytes)", object_key, len(content))
        return StoredBlob(
            url=self.url_for(object_key),
            pathname=object_key,
            size=len(content),
            etag=etag,
            content_type=content_type,
        )

    def delete(self, url: str) -> None:
        self._adapter.delete(self.key_from_url(url))
        logger.info("deleted blob %s", url)

    def get_path(self, object_key: str) -> Path:
        return self._adapter.get_path(object_key)
