import requests

from library.sync import SyncReconciler, is_placeholder, sort_assets
from shared.events import SyncCompleted
from shared.models import AssetRecord
from shared.results import Outcome


def test_placeholder_keys():
    assert is_placeholder("music/")
    assert is_placeholder("music/.keep")
    assert not is_placeholder("music/keep.wav")


def test_new_objects_become_assets(s3_client, fake_session, cache):
    fake_session.add_object("productions/big-shoot/1716508800000-k3f9xq-Interview_A.mov", b"x" * 10)
    fake_session.add_object("clients/acme/logo.png", b"y" * 3)
    fake_session.add_object("music/", b"")
    fake_session.add_object("music/.keep", b"")

    result = SyncReconciler(s3_client, cache).sync()

    assert result.outcome is Outcome.REMOTE
    assert result.added == 2
    by_key = {a.key: a for a in cache.get_all()}
    assert set(by_key) == {
        "productions/big-shoot/1716508800000-k3f9xq-Interview_A.mov",
        "clients/acme/logo.png",
    }

    video = by_key["productions/big-shoot/1716508800000-k3f9xq-Interview_A.mov"]
    assert video.file_name == "Interview_A.mov"
    assert video.name == "Interview_A"
    assert video.file_size == 10
    assert video.category == "video"
    assert "interview" in video.tags
    assert video.project_name == "big-shoot"
    assert video.uploaded_by == "system"
    assert video.uploaded_by_name == "Sync"
    assert video.created_at == video.updated_at

    assert by_key["clients/acme/logo.png"].client_name == "acme"


def test_reconcile_is_idempotent(s3_client, fake_session, cache):
    fake_session.add_object("music/a.wav", b"1")
    fake_session.add_object("music/b.wav", b"22")
    reconciler = SyncReconciler(s3_client, cache)

    first = reconciler.reconcile()
    second = reconciler.sync()

    assert second.assets == first
    assert cache.get_all() == first
    assert (second.added, second.removed, second.refreshed) == (0, 0, 0)


def test_curation_survives_a_size_change(s3_client, fake_session, cache):
    fake_session.add_object("music/theme.wav", b"1234")
    reconciler = SyncReconciler(s3_client, cache)
    asset = reconciler.reconcile()[0]
    created_at = asset.created_at

    cache.upsert(asset.id, tags=["hero", "approved"], is_favorite=True, project_name="Spring")
    fake_session.add_object("music/theme.wav", b"123456789")

    result = reconciler.sync()

    synced = result.assets[0]
    assert result.refreshed == 1
    assert synced.id == asset.id
    assert synced.file_size == 9
    assert synced.tags == ["hero", "approved"]
    assert synced.is_favorite is True
    assert synced.project_name == "Spring"
    assert synced.created_at == created_at
    assert synced.updated_at != created_at


def test_remote_deletion_removes_the_record(s3_client, fake_session, cache):
    fake_session.add_object("music/a.wav", b"1")
    fake_session.add_object("music/b.wav", b"1")
    reconciler = SyncReconciler(s3_client, cache)
    reconciler.reconcile()

    fake_session.objects.pop(("test-media", "music/a.wav"))
    result = reconciler.sync()

    assert result.removed == 1
    assert [a.key for a in cache.get_all()] == ["music/b.wav"]


def test_listing_failure_keeps_the_cache(s3_client, fake_session, cache, events):
    fake_session.add_object("music/a.wav", b"1")
    reconciler = SyncReconciler(s3_client, cache)
    before = reconciler.reconcile()

    completed = []
    events.subscribe(SyncCompleted, completed.append)
    fake_session.fail_with(requests.ConnectionError("offline"))

    result = reconciler.sync()

    assert result.outcome is Outcome.LOCAL_ONLY
    assert result.error
    assert result.assets == before
    assert cache.get_all() == before
    assert completed[0].outcome == "local_only"


def test_rejected_listing_also_falls_back(s3_client, fake_session, cache):
    fake_session.add_object("music/a.wav", b"1")
    reconciler = SyncReconciler(s3_client, cache)
    reconciler.reconcile()

    fake_session.respond("GET", 403, "AccessDenied")
    result = reconciler.sync()

    assert result.outcome is Outcome.LOCAL_ONLY
    assert len(cache.get_all()) == 1


def test_sort_is_newest_first_with_key_ties():
    def rec(key, created):
        return AssetRecord(id=key, key=key, name=key, file_name=key, file_type="", file_size=0,
                           category="other", created_at=created, updated_at=created)

    ordered = sort_assets([
        rec("b", "2024-01-01T00:00:00+00:00"),
        rec("a", "2024-01-01T00:00:00+00:00"),
        rec("c", "2024-02-01T00:00:00.000Z"),
    ])
    assert [a.key for a in ordered] == ["c", "a", "b"]


def test_sync_against_local_store(local_store, cache):
    local_store.put_object("graphics/poster.png", b"png-bytes", "image/png")

    result = SyncReconciler(local_store, cache).sync()

    assert result.ok
    assert [a.key for a in result.assets] == ["graphics/poster.png"]
    assert result.assets[0].url.startswith("file://")
