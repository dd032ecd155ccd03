"""
Error taxonomy for object store and local cache operations.

Transport failures and remote rejections are distinct types so callers can
tell "the store said no" apart from "the store could not be reached".
"""

from typing import Optional


class StorageError(Exception):
    """Base class for all object store errors."""


class ConfigurationError(StorageError):
    """Endpoint, bucket or provider settings are unusable."""


class TransportError(StorageError):
    """The request never produced an HTTP response (DNS, TLS, timeout, reset)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RemoteRejectedError(StorageError):
    """The store answered with a non-2xx status."""

    def __init__(self, operation: str, status_code: int, body: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"{operation} failed: HTTP {status_code} {body[:200]}".rstrip())


class MalformedResponseError(StorageError):
    """A 2xx response whose body could not be parsed."""


class CacheError(Exception):
    """The local asset cache cannot be modified safely."""
