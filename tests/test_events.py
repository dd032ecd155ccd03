from shared.events import AssetDeleted, CacheChanged, Event, EventBus


def test_handlers_receive_only_their_event_type():
    bus = EventBus()
    changed, everything = [], []
    bus.subscribe(CacheChanged, changed.append)
    bus.subscribe(Event, everything.append)

    bus.publish(CacheChanged(reason="upsert", asset_ids=("a",)))
    bus.publish(AssetDeleted(asset_id="a", key="k"))

    assert len(changed) == 1
    assert len(everything) == 2


def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(CacheChanged, seen.append)
    unsubscribe()
    bus.publish(CacheChanged(reason="clear"))
    assert seen == []


def test_failing_handler_does_not_block_others(caplog):
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(CacheChanged, broken)
    bus.subscribe(CacheChanged, seen.append)
    bus.publish(CacheChanged(reason="clear"))

    assert len(seen) == 1
    assert "CacheChanged" in caplog.text
