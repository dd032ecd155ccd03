"""
Abstract base class for object storage providers.

This module defines the interface that all storage providers must implement,
allowing the application to work with Wasabi, AWS S3, Cloudflare R2,
Backblaze B2, any other S3-compatible service, or a local directory.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from shared.constants import DEFAULT_MAX_KEYS
from shared.models import RemoteObjectEntry


class ObjectStorageProvider(ABC):
    """
    Abstract base class for object storage providers.

    Error contract shared by every implementation:
    - put/list/exists raise ``TransportError`` when the store cannot be
      reached and ``RemoteRejectedError`` for a refused request;
    - delete never raises, it reports failure as False;
    - exists answers False only when the store says the object is absent.
    """

    bucket_name: str

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store ``data`` at ``key``.

        Args:
            key: Object key (path) in the bucket
            data: Exact bytes to upload
            content_type: MIME type recorded with the object

        Returns:
            ETag reported by the store ('' if none)
        """

    @abstractmethod
    def delete_object(self, key: str) -> bool:
        """
        Delete the object at ``key``.

        Returns:
            True if the store confirmed the deletion, False otherwise
        """

    @abstractmethod
    def list_objects(self, prefix: str = "", max_keys: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        """
        List up to ``max_keys`` objects whose key starts with ``prefix``.

        Returns:
            Remote entries; an empty list when nothing matches
        """

    @abstractmethod
    def list_all_objects(self, prefix: str = "", page_size: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        """List every object under ``prefix``, following pagination."""

    @abstractmethod
    def object_exists(self, key: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def bucket_exists(self) -> bool:
        """Check if the configured bucket exists and is reachable."""

    @abstractmethod
    def ensure_bucket(self) -> bool:
        """
        Create the bucket if it does not exist.

        Returns:
            True once the bucket exists, including when it already did
        """

    @abstractmethod
    def get_object_url(self, key: str) -> str:
        """Public URL of an object."""

    def status(self) -> Dict[str, Any]:
        """Summary of the provider configuration for display."""
        return {"bucket": self.bucket_name}

    def get_bucket_size(self) -> int:
        """Total size in bytes of every object in the bucket."""
        return sum(entry.size for entry in self.list_all_objects())
