"""
Asset library service.

Wires the object store, the local cache, the reconciler and the upload
engine together. Construct one explicitly (``AssetLibrary.from_config``) and
pass it to whatever needs it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from setup_tool.provider_factory import StorageProviderFactory
from setup_tool.storage_provider import ObjectStorageProvider
from setup_tool.uploader import ProgressCallback, UploadEngine, UploadRequest
from shared.events import AssetDeleted, EventBus
from shared.models import AssetRecord, StoreConfig, dedupe
from shared.results import OperationResult, Outcome, SyncResult, UploadResult
from .cache import LocalAssetCache
from .sync import SyncReconciler

logger = logging.getLogger(__name__)


class AssetLibrary:
    """Catalogue of media assets backed by an object store."""

    def __init__(self, config: StoreConfig, provider: ObjectStorageProvider,
                 cache: LocalAssetCache, events: Optional[EventBus] = None):
        self.config = config
        self.storage = provider
        self.events = events or cache.events
        self.cache = cache
        self.cache.events = self.events
        self.reconciler = SyncReconciler(provider, cache)
        self.uploader = UploadEngine(provider, cache, config.upload_concurrency, config.region)

    @classmethod
    def from_config(cls, config: StoreConfig, session: Optional[requests.Session] = None,
                    events: Optional[EventBus] = None) -> 'AssetLibrary':
        events = events or EventBus()
        provider = StorageProviderFactory.create(config, session=session)
        cache = LocalAssetCache(config.cache_path, events=events)
        return cls(config, provider, cache, events)

    # -- reads --------------------------------------------------------------

    def list_assets(self, category: Optional[str] = None, project_name: Optional[str] = None,
                    tag: Optional[str] = None, favorites_only: bool = False) -> List[AssetRecord]:
        """Cached assets, optionally filtered."""
        assets = self.cache.get_all()
        if category:
            assets = [a for a in assets if a.category == category]
        if project_name:
            assets = [a for a in assets if a.project_name == project_name]
        if tag:
            assets = [a for a in assets if tag in a.tags]
        if favorites_only:
            assets = [a for a in assets if a.is_favorite]
        return assets

    def get_asset(self, asset_id: str) -> Optional[AssetRecord]:
        return self.cache.get(asset_id)

    def search(self, query: str) -> List[AssetRecord]:
        """Case-insensitive match on name, file name, tags, project and client."""
        q = query.lower().strip()
        if not q:
            return self.cache.get_all()

        def matches(asset: AssetRecord) -> bool:
            haystack = [asset.name, asset.file_name, asset.project_name or '', asset.client_name or '']
            haystack.extend(asset.tags)
            return any(q in value.lower() for value in haystack)

        return [a for a in self.cache.get_all() if matches(a)]

    # -- remote operations --------------------------------------------------

    def upload(self, uploads: List[UploadRequest], concurrency: Optional[int] = None,
               progress_callback: Optional[ProgressCallback] = None) -> List[UploadResult]:
        return self.uploader.upload_files(uploads, concurrency, progress_callback)

    def upload_paths(self, paths: Iterable[str], concurrency: Optional[int] = None,
                     progress_callback: Optional[ProgressCallback] = None,
                     **options) -> List[UploadResult]:
        return self.uploader.upload_paths(paths, concurrency, progress_callback, **options)

    def delete_asset(self, asset_id: str) -> OperationResult:
        """
        Delete an asset from the store, then from the cache.

        The cached record is only removed once the store confirms the
        deletion, so a failed delete leaves catalogue and bucket consistent.
        """
        asset = self.cache.get(asset_id)
        if asset is None:
            return OperationResult(Outcome.FAILED, error=f"Asset not found: {asset_id}")

        if not asset.key:
            self.cache.delete(asset_id)
            logger.info("Removed %s locally; it has no object key", asset_id)
            return OperationResult(Outcome.LOCAL_ONLY, asset=asset)

        if not self.storage.delete_object(asset.key):
            return OperationResult(Outcome.FAILED, asset=asset,
                                   error=f"Remote delete failed for {asset.key}")

        self.cache.delete(asset_id)
        self.events.publish(AssetDeleted(asset_id=asset_id, key=asset.key))
        return OperationResult(Outcome.REMOTE, asset=asset)

    def sync(self) -> SyncResult:
        return self.reconciler.sync()

    # -- local curation -----------------------------------------------------

    def _update(self, asset_id: str, **fields: Any) -> OperationResult:
        updated = self.cache.upsert(asset_id, **fields)
        if updated is None:
            return OperationResult(Outcome.FAILED, error=f"Asset not found: {asset_id}")
        return OperationResult(Outcome.LOCAL_ONLY, asset=updated)

    def update_tags(self, asset_id: str, tags: List[str]) -> OperationResult:
        return self._update(asset_id, tags=dedupe(list(tags)))

    def add_tags(self, asset_id: str, tags: List[str]) -> OperationResult:
        asset = self.cache.get(asset_id)
        if asset is None:
            return OperationResult(Outcome.FAILED, error=f"Asset not found: {asset_id}")
        return self.update_tags(asset_id, asset.tags + list(tags))

    def _toggle(self, asset_id: str, flag: str) -> OperationResult:
        asset = self.cache.get(asset_id)
        if asset is None:
            return OperationResult(Outcome.FAILED, error=f"Asset not found: {asset_id}")
        return self._update(asset_id, **{flag: not getattr(asset, flag)})

    def toggle_favorite(self, asset_id: str) -> OperationResult:
        return self._toggle(asset_id, 'is_favorite')

    def toggle_shared(self, asset_id: str) -> OperationResult:
        return self._toggle(asset_id, 'is_shared')

    def toggle_client_visible(self, asset_id: str) -> OperationResult:
        return self._toggle(asset_id, 'is_client_visible')

    def update_metadata(self, asset_id: str, **fields: Any) -> OperationResult:
        """
        Edit cached fields (name, project, tags, metadata, ...).

        Remote-owned fields (key, size) are not editable here.
        """
        for name in ('key', 'file_size'):
            if name in fields:
                raise ValueError(f"{name} is owned by the object store")
        return self._update(asset_id, **fields)

    # -- reporting ----------------------------------------------------------

    def storage_stats(self) -> Dict[str, Any]:
        """Totals over the cached catalogue, by category and by project."""
        stats: Dict[str, Any] = {
            'total_files': 0,
            'total_size': 0,
            'by_category': {},
            'by_project': {},
        }
        for asset in self.cache.get_all():
            stats['total_files'] += 1
            stats['total_size'] += asset.file_size

            bucket = stats['by_category'].setdefault(asset.category, {'count': 0, 'size': 0})
            bucket['count'] += 1
            bucket['size'] += asset.file_size

            if asset.project_name:
                bucket = stats['by_project'].setdefault(asset.project_name, {'count': 0, 'size': 0})
                bucket['count'] += 1
                bucket['size'] += asset.file_size
        return stats

    def get_public_url(self, asset_id: str) -> Optional[str]:
        asset = self.cache.get(asset_id)
        if asset is None or not asset.key:
            return None
        return self.storage.get_object_url(asset.key)

    def status(self) -> Dict[str, Any]:
        status = dict(self.storage.status())
        status['provider'] = StorageProviderFactory.get_provider_name(self.config.provider)
        status['cached_assets'] = len(self.cache.get_all())
        return status
