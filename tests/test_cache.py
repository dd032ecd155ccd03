import json
import sqlite3
import time

import pytest

from library.cache import LocalAssetCache
from shared.constants import CACHE_SCHEMA_VERSION, CACHE_STORAGE_KEY
from shared.errors import CacheError
from shared.events import CacheChanged
from shared.models import AssetRecord


def make_asset(asset_id="a1", key="music/1-abc123-theme.wav", **overrides):
    fields = dict(
        id=asset_id, key=key, name="theme", file_name="theme.wav", file_type="wav",
        file_size=100, category="audio", tags=["audio"],
        created_at="2024-01-01T00:00:00+00:00", updated_at="2024-01-01T00:00:00+00:00",
    )
    fields.update(overrides)
    return AssetRecord(**fields)


def test_empty_cache(cache):
    assert cache.get_all() == []
    assert cache.get("missing") is None


def test_insert_puts_new_records_first(cache):
    cache.upsert(make_asset("a1"))
    cache.upsert(make_asset("a2", key="music/2.wav"))
    assert [a.id for a in cache.get_all()] == ["a2", "a1"]


def test_partial_update_keeps_other_fields(cache):
    cache.upsert(make_asset(tags=["audio", "final"], is_favorite=True))

    updated = cache.upsert("a1", name="Main Theme")

    assert updated.name == "Main Theme"
    assert updated.tags == ["audio", "final"]
    assert updated.is_favorite is True
    assert cache.get("a1").name == "Main Theme"


def test_update_always_refreshes_updated_at(cache):
    stored = cache.upsert(make_asset())
    assert stored.updated_at != "2024-01-01T00:00:00+00:00"

    time.sleep(0.001)
    again = cache.upsert("a1", is_favorite=True)
    assert again.updated_at > stored.updated_at
    assert again.created_at == "2024-01-01T00:00:00+00:00"


def test_upsert_unknown_id_without_record_is_none(cache):
    assert cache.upsert("nope", name="x") is None
    assert cache.get_all() == []


def test_upsert_rejects_unknown_and_immutable_fields(cache):
    cache.upsert(make_asset())
    with pytest.raises(ValueError):
        cache.upsert("a1", colour="red")
    with pytest.raises(ValueError):
        cache.upsert("a1", id="other")


def test_delete(cache):
    cache.upsert(make_asset())
    assert cache.delete("a1") is True
    assert cache.delete("a1") is False
    assert cache.get_all() == []


def test_replace_all_stores_records_as_given(cache):
    cache.upsert(make_asset("old"))
    records = [make_asset("b1", key="k1"), make_asset("b2", key="k2")]

    cache.replace_all(records)

    assert cache.get_all() == records


def test_state_survives_a_new_instance(tmp_path):
    path = str(tmp_path / "assets.db")
    LocalAssetCache(path).upsert(make_asset())
    assert LocalAssetCache(path).get("a1").key == "music/1-abc123-theme.wav"


def test_document_is_versioned(tmp_path):
    path = tmp_path / "assets.db"
    LocalAssetCache(str(path)).upsert(make_asset())

    with sqlite3.connect(path) as conn:
        raw = conn.execute("SELECT value FROM kv_store WHERE key = ?", (CACHE_STORAGE_KEY,)).fetchone()[0]
    document = json.loads(raw)
    assert document["version"] == CACHE_SCHEMA_VERSION
    assert document["assets"][0]["id"] == "a1"


def test_legacy_list_layout_is_migrated(tmp_path):
    path = tmp_path / "assets.db"
    cache = LocalAssetCache(str(path))
    legacy = [{
        "id": "ev_1", "key": "music/theme.wav", "name": "theme", "fileName": "theme.wav",
        "fileType": "audio/wav", "fileSize": 42, "category": "audio", "tags": ["audio"],
        "aiTags": ["audio"], "isFavorite": True, "uploadedByName": "Ana",
        "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-01T00:00:00.000Z",
        "somethingRemoved": 1,
    }]
    with sqlite3.connect(path) as conn:
        conn.execute("INSERT INTO kv_store (key, value) VALUES (?, ?)", (CACHE_STORAGE_KEY, json.dumps(legacy)))

    asset = cache.get("ev_1")
    assert asset.file_size == 42
    assert asset.file_name == "theme.wav"
    assert asset.is_favorite is True
    assert asset.uploaded_by_name == "Ana"


def test_mutations_publish_events(cache, events):
    seen = []
    events.subscribe(CacheChanged, seen.append)

    cache.upsert(make_asset())
    cache.delete("a1")
    cache.delete("a1")

    assert [(e.reason, e.asset_ids) for e in seen] == [("upsert", ("a1",)), ("delete", ("a1",))]


def test_clear(cache):
    cache.upsert(make_asset())
    cache.clear()
    assert cache.get_all() == []


def _store_raw(path, value):
    with sqlite3.connect(path) as conn:
        conn.execute("INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)", (CACHE_STORAGE_KEY, value))


def _stored_rows(path):
    with sqlite3.connect(path) as conn:
        return dict(conn.execute("SELECT key, value FROM kv_store").fetchall())


def test_one_bad_record_does_not_lose_the_others(tmp_path):
    path = tmp_path / "assets.db"
    cache = LocalAssetCache(str(path))
    for i in range(3):
        cache.upsert(make_asset(f"a{i}", key=f"music/{i}.wav"))

    document = json.loads(_stored_rows(path)[CACHE_STORAGE_KEY])
    del document["assets"][1]["file_size"]
    document["assets"].append("oops")
    _store_raw(path, json.dumps(document))

    assert sorted(a.id for a in cache.get_all()) == ["a0", "a2"]

    cache.upsert(make_asset("a9", key="music/9.wav"))

    assert sorted(a.id for a in cache.get_all()) == ["a0", "a2", "a9"]
    backups = [k for k in _stored_rows(path) if k.startswith(f"{CACHE_STORAGE_KEY}.backup-")]
    assert len(backups) == 1
    assert "oops" in _stored_rows(path)[backups[0]]


def test_unreadable_document_is_backed_up_before_rewrite(tmp_path):
    path = tmp_path / "assets.db"
    cache = LocalAssetCache(str(path))
    _store_raw(path, "{not json")

    assert cache.get_all() == []
    cache.upsert(make_asset())

    rows = _stored_rows(path)
    assert "{not json" in rows.values()
    assert [a.id for a in cache.get_all()] == ["a1"]


def test_clean_writes_leave_no_backup(tmp_path):
    path = tmp_path / "assets.db"
    cache = LocalAssetCache(str(path))
    cache.upsert(make_asset())
    cache.upsert("a1", name="Renamed")
    assert list(_stored_rows(path)) == [CACHE_STORAGE_KEY]


def test_newer_schema_is_readable_but_never_rewritten(tmp_path):
    path = tmp_path / "assets.db"
    cache = LocalAssetCache(str(path))
    newer = make_asset().to_dict()
    newer["rating"] = 5
    raw = json.dumps({"version": CACHE_SCHEMA_VERSION + 1, "assets": [newer]})
    _store_raw(path, raw)

    assert cache.get("a1").name == "theme"

    with pytest.raises(CacheError):
        cache.upsert("a1", is_favorite=True)
    with pytest.raises(CacheError):
        cache.clear()

    assert _stored_rows(path)[CACHE_STORAGE_KEY] == raw
