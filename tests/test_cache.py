import asyncio

import pytest

from tests.helpers import make_desk
from workshop.operator.desk.cache import DeskWatchCache
from workshop.operator.desk.events import DeskAdded, DeskDeleted, DeskUpdated


def drain(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def next_event(cache: DeskWatchCache, timeout: float = 2.0):
    return await asyncio.wait_for(cache.events.get(), timeout)


@pytest.fixture
def cache(cluster, logger):
    return DeskWatchCache(
        logger, api=cluster, watch_factory=cluster.watch, timeout_seconds=1, backoff_seconds=0.01
    )


@pytest.mark.asyncio
async def test_apply_publishes_typed_events(cache):
    body = make_desk("alice").to_dict()
    cache.apply("ADDED", body)

    modified = make_desk("alice", resource_version="2").to_dict()
    cache.apply("MODIFIED", modified)
    cache.apply("DELETED", modified)

    added, updated, deleted = drain(cache.events)
    assert isinstance(added, DeskAdded)
    assert isinstance(updated, DeskUpdated)
    assert updated.old.resource_version == "1"
    assert updated.new.resource_version == "2"
    assert isinstance(deleted, DeskDeleted)
    assert cache.get("alice") is None


@pytest.mark.asyncio
async def test_bookmarks_and_unknown_events_are_ignored(cache):
    assert cache.apply("BOOKMARK", {"metadata": {"name": "alice"}}) is None
    assert cache.events.empty()


@pytest.mark.asyncio
async def test_replace_synthesizes_differences(cache):
    cache.replace([make_desk("alice"), make_desk("bob", uid="uid-bob")])
    drain(cache.events)

    cache.replace(
        [
            make_desk("alice"),
            make_desk("bob", uid="uid-bob", resource_version="7"),
            make_desk("carol", uid="uid-carol"),
        ]
    )
    events = drain(cache.events)

    assert sorted((type(e).__name__, e.name) for e in events) == [
        ("DeskAdded", "carol"),
        ("DeskUpdated", "bob"),
    ]

    cache.replace([make_desk("carol", uid="uid-carol")])
    events = drain(cache.events)
    assert sorted((type(e).__name__, e.name) for e in events) == [
        ("DeskDeleted", "alice"),
        ("DeskDeleted", "bob"),
    ]
    assert cache.names() == {"carol"}


@pytest.mark.asyncio
async def test_lists_then_follows_the_watch(cache, cluster):
    cluster.add_desk("alice", owner="alice")
    assert not cache.has_synced()

    await cache.start()
    try:
        first = await next_event(cache)
        assert isinstance(first, DeskAdded) and first.name == "alice"
        assert cache.has_synced()

        cluster.add_desk("bob")
        second = await next_event(cache)
        assert isinstance(second, DeskAdded) and second.name == "bob"

        cluster.delete_cluster_custom_object("workshop.io", "v1", "desks", "alice")
        third = await next_event(cache)
        assert isinstance(third, DeskDeleted) and third.name == "alice"
        assert [desk.name for desk in cache.list()] == ["bob"]
    finally:
        await cache.stop()


@pytest.mark.asyncio
async def test_relists_after_watch_expires(cache, cluster):
    await cache.start()
    try:
        cluster.inject_watch_error(410)
        cluster.add_desk("alice")

        event = await next_event(cache)
        assert isinstance(event, DeskAdded) and event.name == "alice"
        assert cluster.calls.count("list_cluster_custom_object") >= 2
    finally:
        await cache.stop()


@pytest.mark.asyncio
async def test_keeps_retrying_when_listing_fails(cache, cluster):
    cluster.fail("list_cluster_custom_object", 500, times=2)
    cluster.add_desk("alice")

    await cache.start()
    try:
        event = await next_event(cache)
        assert event.name == "alice"
        assert cache.has_synced()
    finally:
        await cache.stop()
