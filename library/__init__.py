"""Asset catalogue: local cache, remote reconciliation and the library service."""

from .cache import LocalAssetCache
from .manager import AssetLibrary
from .sync import SyncReconciler

__all__ = ["LocalAssetCache", "AssetLibrary", "SyncReconciler"]
