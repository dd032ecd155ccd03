"""
Explicit outcome types for operations that touch the remote store and the
local cache.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from shared.models import AssetRecord


class Outcome(Enum):
    """Where an operation took effect."""
    REMOTE = "remote"          # the remote store and the cache agree
    LOCAL_ONLY = "local_only"  # only the cache changed (or was read)
    FAILED = "failed"          # nothing changed


@dataclass
class OperationResult:
    outcome: Outcome
    asset: Optional[AssetRecord] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED


@dataclass
class UploadResult:
    """Result of one file in a batch upload."""
    file_name: str
    outcome: Outcome
    asset: Optional[AssetRecord] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.REMOTE


@dataclass
class SyncResult:
    """
    Result of a reconciliation run.

    ``outcome`` is REMOTE when the listing was fetched and merged, and
    LOCAL_ONLY when the listing failed and the cache was returned as-is.
    """
    outcome: Outcome
    assets: List[AssetRecord] = field(default_factory=list)
    added: int = 0
    removed: int = 0
    refreshed: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.REMOTE
