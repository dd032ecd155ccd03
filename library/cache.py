"""
Local asset cache.

The whole catalogue is one serialized AssetCacheDocument stored under a
single key of a small SQLite key/value table. Writes are last-writer-wins
across processes; inside a process every read-modify-write holds a lock.
A stored document that cannot be fully decoded is copied to a backup key
before it is rewritten, and one written by a newer release is never
rewritten.
"""

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from shared.constants import CACHE_DB_FILENAME, CACHE_SCHEMA_VERSION, CACHE_STORAGE_KEY, DEFAULT_DATA_DIR
from shared.errors import CacheError
from shared.events import CacheChanged, EventBus
from shared.models import AssetCacheDocument, AssetRecord, utc_now_iso

logger = logging.getLogger(__name__)

# Fields an upsert may never change
_IMMUTABLE_FIELDS = {'id'}


class LocalAssetCache:
    """Persisted id -> AssetRecord store."""

    def __init__(self, db_path: Optional[str] = None, events: Optional[EventBus] = None):
        if db_path is None:
            db_dir = Path(DEFAULT_DATA_DIR).expanduser()
            db_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = db_dir / CACHE_DB_FILENAME
        else:
            self.db_path = Path(db_path).expanduser()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.events = events or EventBus()
        self.lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=20, isolation_level=None)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    # -- document I/O -------------------------------------------------------

    def _read_raw(self, conn: sqlite3.Connection) -> Optional[str]:
        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (CACHE_STORAGE_KEY,)
        ).fetchone()
        return row[0] if row else None

    def _decode(self, raw: Optional[str]) -> Tuple[AssetCacheDocument, bool]:
        """Decode a stored document; the flag is False when anything was lost."""
        if raw is None:
            return AssetCacheDocument.empty(), True
        try:
            document = AssetCacheDocument.from_json(raw)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning("Asset cache is unreadable: %s", e)
            return AssetCacheDocument.empty(), False
        return document, document.skipped == 0

    def _read_document(self, conn: sqlite3.Connection) -> AssetCacheDocument:
        document, _ = self._decode(self._read_raw(conn))
        return document

    def _backup(self, conn: sqlite3.Connection, raw: str) -> str:
        backup_key = f"{CACHE_STORAGE_KEY}.backup-{int(time.time() * 1000)}"
        conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
            (backup_key, raw),
        )
        logger.warning("Saved the damaged asset cache as '%s' before rewriting it", backup_key)
        return backup_key

    def _write_document(self, conn: sqlite3.Connection, assets: List[AssetRecord]):
        document = AssetCacheDocument(version=CACHE_SCHEMA_VERSION, assets=assets)
        conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
            (CACHE_STORAGE_KEY, document.to_json()),
        )

    def _mutate(self, reason: str,
                change: Callable[[List[AssetRecord]], Tuple[List[AssetRecord], Any, Tuple[str, ...]]]) -> Any:
        """
        Run ``change`` against the stored list inside one transaction.

        ``change`` returns (new_assets, result, touched_ids); returning None
        for new_assets leaves the store untouched.
        """
        with self.lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    raw = self._read_raw(conn)
                    document, intact = self._decode(raw)
                    if document.is_newer_schema:
                        raise CacheError(
                            f"Asset cache uses schema {document.version}, newer than "
                            f"{CACHE_SCHEMA_VERSION}; refusing to modify it"
                        )
                    new_assets, result, touched = change(document.assets)
                    if new_assets is not None:
                        if not intact:
                            self._backup(conn, raw)
                        self._write_document(conn, new_assets)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        if new_assets is not None:
            self.events.publish(CacheChanged(reason=reason, asset_ids=touched))
        return result

    # -- reads --------------------------------------------------------------

    def get_all(self) -> List[AssetRecord]:
        """Every cached record, in stored order."""
        with self._get_connection() as conn:
            return self._read_document(conn).assets

    def get(self, asset_id: str) -> Optional[AssetRecord]:
        for asset in self.get_all():
            if asset.id == asset_id:
                return asset
        return None

    def find_by_key(self, key: str) -> Optional[AssetRecord]:
        for asset in self.get_all():
            if asset.key == key:
                return asset
        return None

    # -- writes -------------------------------------------------------------

    def upsert(self, record_or_id: Union[AssetRecord, str], **fields: Any) -> Optional[AssetRecord]:
        """
        Insert a record or partially update an existing one.

        Args:
            record_or_id: A full record (inserted at the front when its id is
                unknown) or the id of an existing record
            **fields: Fields to change; everything else keeps its stored value

        Returns:
            The stored record, or None when an id was given that is not cached

        Raises:
            ValueError: If a field name is unknown or immutable
            CacheError: If the stored cache was written by a newer release
        """
        unknown = set(fields) - set(AssetRecord.field_names())
        if unknown:
            raise ValueError(f"Unknown asset fields: {sorted(unknown)}")
        if set(fields) & _IMMUTABLE_FIELDS:
            raise ValueError("An asset id cannot be changed")

        if isinstance(record_or_id, AssetRecord):
            incoming: Optional[AssetRecord] = record_or_id
            asset_id = record_or_id.id
        else:
            incoming = None
            asset_id = record_or_id

        changes = dict(fields, updated_at=utc_now_iso())

        def change(assets: List[AssetRecord]):
            for index, existing in enumerate(assets):
                if existing.id == asset_id:
                    base = incoming or existing
                    updated = base.with_updates(**changes)
                    assets[index] = updated
                    return assets, updated, (asset_id,)

            if incoming is None:
                return None, None, ()
            created = incoming.with_updates(**changes)
            return [created] + assets, created, (asset_id,)

        result = self._mutate("upsert", change)
        if result is None:
            logger.debug("Upsert skipped, asset %s not cached", asset_id)
        return result

    def delete(self, asset_id: str) -> bool:
        """Remove a record; False when it was not cached."""
        def change(assets: List[AssetRecord]):
            remaining = [a for a in assets if a.id != asset_id]
            if len(remaining) == len(assets):
                return None, False, ()
            return remaining, True, (asset_id,)

        return self._mutate("delete", change)

    def replace_all(self, records: List[AssetRecord]) -> None:
        """Store ``records`` as the whole catalogue, exactly as given."""
        records = list(records)

        def change(_assets: List[AssetRecord]):
            return records, None, tuple(r.id for r in records)

        self._mutate("replace_all", change)

    def clear(self) -> None:
        self._mutate("clear", lambda _assets: ([], None, ()))
