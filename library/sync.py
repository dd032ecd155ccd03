"""
Reconciliation of the local asset cache against the remote object listing.

The remote store decides which objects exist, how big they are and when they
were last modified. The cache decides everything a user curated: ids, tags,
flags, uploader and project/client attribution. The object key is the only
thing the two sides are joined on.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from setup_tool.keys import folder_context, original_file_name
from setup_tool.storage_provider import ObjectStorageProvider
from shared.categories import detect_file_category, display_name, file_extension, generate_smart_tags
from shared.constants import PLACEHOLDER_SUFFIXES, SYNC_UPLOADER_ID, SYNC_UPLOADER_NAME
from shared.errors import StorageError
from shared.events import SyncCompleted
from shared.models import AssetRecord, RemoteObjectEntry
from shared.results import Outcome, SyncResult
from .cache import LocalAssetCache

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_placeholder(key: str) -> bool:
    """Folder markers such as 'music/' or 'music/.keep' are not assets."""
    return key.endswith(PLACEHOLDER_SUFFIXES)


def _instant(value: str) -> datetime:
    """Parse a stored ISO timestamp for ordering; unparsable sorts last."""
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_assets(assets: List[AssetRecord]) -> List[AssetRecord]:
    """Newest first by created_at, ties broken by key."""
    ordered = sorted(assets, key=lambda a: a.key)
    ordered.sort(key=lambda a: _instant(a.created_at), reverse=True)
    return ordered


class SyncReconciler:
    """Rebuilds the cache from the remote listing while keeping local curation."""

    def __init__(self, provider: ObjectStorageProvider, cache: LocalAssetCache):
        self.provider = provider
        self.cache = cache

    def _refresh(self, existing: AssetRecord, entry: RemoteObjectEntry) -> AssetRecord:
        category, subcategory = detect_file_category(existing.file_name or entry.file_name)
        return existing.with_updates(
            file_size=entry.size,
            file_type=file_extension(existing.file_name or entry.file_name),
            category=category,
            subcategory=subcategory,
            url=self.provider.get_object_url(entry.key),
            updated_at=entry.last_modified_iso,
        )

    def _synthesize(self, entry: RemoteObjectEntry) -> AssetRecord:
        file_name = original_file_name(entry.key)
        category, subcategory = detect_file_category(file_name)
        smart_tags = generate_smart_tags(file_name, category)
        project_name, client_name = folder_context(entry.key)
        modified = entry.last_modified_iso

        return AssetRecord(
            id=AssetRecord.generate_id(),
            key=entry.key,
            name=display_name(file_name),
            file_name=file_name,
            file_type=file_extension(file_name),
            file_size=entry.size,
            category=category,
            subcategory=subcategory,
            url=self.provider.get_object_url(entry.key),
            project_name=project_name,
            client_name=client_name,
            tags=list(smart_tags),
            ai_tags=list(smart_tags),
            metadata={'bucket': self.provider.bucket_name, 'etag': entry.etag},
            uploaded_by=SYNC_UPLOADER_ID,
            uploaded_by_name=SYNC_UPLOADER_NAME,
            created_at=modified,
            updated_at=modified,
        )

    def merge(self, local: List[AssetRecord],
              remote: List[RemoteObjectEntry]) -> Tuple[List[AssetRecord], int, int, int]:
        """
        Merge a cache snapshot with a remote listing.

        Returns:
            (merged records, added, removed, refreshed)
        """
        local_by_key: Dict[str, AssetRecord] = {a.key: a for a in local if a.key}
        merged: List[AssetRecord] = []
        seen = set()
        added = refreshed = 0

        for entry in remote:
            if is_placeholder(entry.key) or entry.key in seen:
                continue
            seen.add(entry.key)

            existing = local_by_key.get(entry.key)
            if existing is None:
                merged.append(self._synthesize(entry))
                added += 1
                continue

            updated = self._refresh(existing, entry)
            if updated != existing:
                refreshed += 1
            merged.append(updated)

        removed = sum(1 for a in local if a.key not in seen)
        return sort_assets(merged), added, removed, refreshed

    def sync(self) -> SyncResult:
        """
        Reconcile the cache with the remote listing.

        A listing failure leaves the cache untouched and reports LOCAL_ONLY
        with the cached records.
        """
        try:
            remote = self.provider.list_all_objects()
        except StorageError as e:
            logger.warning("Listing failed, keeping cached assets: %s", e)
            assets = self.cache.get_all()
            result = SyncResult(outcome=Outcome.LOCAL_ONLY, assets=assets, error=str(e))
        else:
            assets, added, removed, refreshed = self.merge(self.cache.get_all(), remote)
            self.cache.replace_all(assets)
            logger.info("Synced %d assets (%d added, %d removed, %d refreshed)",
                        len(assets), added, removed, refreshed)
            result = SyncResult(
                outcome=Outcome.REMOTE,
                assets=assets,
                added=added,
                removed=removed,
                refreshed=refreshed,
            )

        self.cache.events.publish(SyncCompleted(
            outcome=result.outcome.value,
            added=result.added,
            removed=result.removed,
            refreshed=result.refreshed,
            total=len(result.assets),
        ))
        return result

    def reconcile(self) -> List[AssetRecord]:
        """Reconcile and return the resulting catalogue."""
        return self.sync().assets
