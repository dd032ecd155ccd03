"""
Local filesystem storage provider.
Implements the ObjectStorageProvider interface on a directory tree.
"""

import hashlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from shared.constants import DEFAULT_CONTENT_TYPE, DEFAULT_MAX_KEYS
from shared.errors import ConfigurationError, TransportError
from shared.models import RemoteObjectEntry
from .storage_provider import ObjectStorageProvider

logger = logging.getLogger(__name__)


class LocalObjectStore(ObjectStorageProvider):
    """
    Storage provider that uses the local filesystem.
    Useful for offline work, a NAS mount, or as a stand-in remote in tests.

    Objects live at ``<root_dir>/<bucket>/<key>``.
    """

    def __init__(self, root_dir: str, bucket: str):
        if not root_dir:
            raise ConfigurationError("A root directory is required for local storage")
        if not bucket:
            raise ConfigurationError("A bucket name is required")
        self.base_path = Path(root_dir).expanduser().absolute()
        self.bucket_name = bucket

    @property
    def bucket_root(self) -> Path:
        return self.base_path / self.bucket_name

    def _get_path(self, key: str) -> Path:
        """Absolute local path for an object key."""
        path = (self.bucket_root / key).resolve()
        root = self.bucket_root.resolve()
        if path != root and root not in path.parents:
            raise ValueError(f"Key escapes the bucket: {key}")
        return path

    def put_object(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        path = self._get_path(key)
        data = bytes(data)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise TransportError(f"Local write of {key} failed: {e}", cause=e) from e
        return hashlib.md5(data).hexdigest()

    def delete_object(self, key: str) -> bool:
        try:
            path = self._get_path(key)
            if path.exists():
                os.remove(path)
            return True
        except (OSError, ValueError) as e:
            logger.warning("Local delete of %s failed: %s", key, e)
            return False

    def _entry(self, path: Path) -> RemoteObjectEntry:
        stat = path.stat()
        return RemoteObjectEntry(
            key=path.relative_to(self.bucket_root).as_posix(),
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            etag=hashlib.md5(path.read_bytes()).hexdigest(),
        )

    def list_all_objects(self, prefix: str = "", page_size: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        if not self.bucket_root.exists():
            return []

        entries = []
        try:
            for root, _, filenames in os.walk(self.bucket_root):
                for filename in filenames:
                    path = Path(root) / filename
                    key = path.relative_to(self.bucket_root).as_posix()
                    if key.startswith(prefix):
                        entries.append(self._entry(path))
        except OSError as e:
            raise TransportError(f"Local listing failed: {e}", cause=e) from e

        # S3 lists in key order
        entries.sort(key=lambda e: e.key)
        return entries

    def list_objects(self, prefix: str = "", max_keys: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        return self.list_all_objects(prefix)[:max(max_keys, 0)]

    def object_exists(self, key: str) -> bool:
        return self._get_path(key).is_file()

    def bucket_exists(self) -> bool:
        return self.bucket_root.is_dir()

    def ensure_bucket(self) -> bool:
        try:
            self.bucket_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(f"Could not create {self.bucket_root}: {e}", cause=e) from e
        return True

    def get_object_url(self, key: str) -> str:
        """Return a file:// URL for the object."""
        return self._get_path(key).as_uri()

    def status(self) -> Dict[str, Any]:
        return {
            "configured": True,
            "bucket": self.bucket_name,
            "region": "local",
            "endpoint": str(self.base_path),
        }
