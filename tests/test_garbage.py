import pytest
from kubernetes import client

from tests.helpers import make_desk
from workshop.operator.desk.cache import DeskWatchCache
from workshop.operator.desk.garbage import GarbageCollector, desk_owner_names


def owned_namespace(name, desk, uid="uid", kind="Desk", api_version="workshop.io/v1"):
    return {
        "metadata": {
            "name": name,
            "ownerReferences": [
                {"apiVersion": api_version, "kind": kind, "name": desk, "uid": uid}
            ],
        }
    }


@pytest.fixture
def cache(cluster, logger):
    return DeskWatchCache(logger, api=cluster, watch_factory=cluster.watch)


@pytest.fixture
def collector(cluster, cache, logger):
    return GarbageCollector(logger, cache, core_v1=cluster)


def test_desk_owner_names_ignores_foreign_owners():
    assert desk_owner_names(owned_namespace("a", "alice")) == ["alice"]
    assert desk_owner_names(owned_namespace("a", "alice", kind="Deployment")) == []
    assert desk_owner_names(owned_namespace("a", "alice", api_version="other.io/v1")) == []
    assert desk_owner_names({"metadata": {"name": "kube-system"}}) == []


@pytest.mark.asyncio
async def test_sweep_deletes_only_orphaned_namespaces(cluster, cache, collector, provisioner):
    await provisioner.provision(make_desk("alice", uid="uid-alice"))
    await provisioner.provision(make_desk("bob", uid="uid-bob"))
    cluster.create_namespace({"metadata": {"name": "kube-system"}})
    cache.replace([make_desk("alice", uid="uid-alice")])

    deleted = await collector.sweep_stale()

    assert sorted(deleted) == ["bob-desk-default", "bob-desk-trusted"]
    assert set(cluster.namespaces) == {
        "alice-desk-trusted",
        "alice-desk-default",
        "kube-system",
    }


@pytest.mark.asyncio
async def test_sweep_continues_past_failed_deletes(cluster, collector, provisioner):
    await provisioner.provision(make_desk("bob", uid="uid-bob"))
    cluster.fail("delete_namespace", 500)

    deleted = await collector.sweep_stale()

    assert len(deleted) == 1
    assert len(cluster.namespaces) == 1


@pytest.mark.asyncio
async def test_sweep_skips_namespaces_already_terminating(cluster, collector, provisioner):
    await provisioner.provision(make_desk("bob", uid="uid-bob"))
    for namespace in cluster.namespaces.values():
        namespace["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"

    assert await collector.sweep_stale() == []
    assert "delete_namespace" not in cluster.calls


@pytest.mark.asyncio
async def test_sweep_raises_when_namespaces_cannot_be_listed(cluster, collector):
    cluster.fail("list_namespace", 403)

    with pytest.raises(client.ApiException):
        await collector.sweep_stale()


def test_owning_desks_only_returns_live_matching_desks(cache, collector):
    alice = make_desk("alice", uid="uid-alice")
    cache.replace([alice])

    assert collector.owning_desks(owned_namespace("x", "alice", uid="uid-alice")) == [alice]
    assert collector.owning_desks(owned_namespace("x", "alice", uid="old-uid")) == []
    assert collector.owning_desks(owned_namespace("x", "bob")) == []
    assert collector.owning_desks({"metadata": {"name": "x"}}) == []
