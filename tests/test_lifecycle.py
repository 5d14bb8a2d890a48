import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from workshop.crds.desk import DeskState
from workshop.operator.desk.lifecycle import ExpirationSweeper
from workshop.utils.time import format_timestamp, utcnow

PAST = format_timestamp(utcnow() - timedelta(hours=1))
FUTURE = format_timestamp(utcnow() + timedelta(days=1))


def set_state(cluster, name, state):
    body = cluster.get_cluster_custom_object("workshop.io", "v1", "desks", name)
    body["status"] = {"state": state.value, "message": state.message}
    cluster.replace_cluster_custom_object("workshop.io", "v1", "desks", name, body)


def state_of(cluster, name):
    return cluster.desks[name].get("status", {}).get("state")


@pytest.fixture
def sweeper(desk_client, logger):
    return ExpirationSweeper(logger, desk_client)


@pytest.mark.asyncio
async def test_expired_ready_desk_becomes_expired(cluster, sweeper):
    cluster.add_desk("alice", expirationTimestamp=PAST)
    set_state(cluster, "alice", DeskState.READY)
    cluster.add_desk("bob", expirationTimestamp=FUTURE)
    cluster.add_desk("carol")

    expired = await sweeper.sweep_once()

    assert expired == ["alice"]
    assert state_of(cluster, "alice") == "Expired"
    assert cluster.desks["alice"]["status"]["message"] == DeskState.EXPIRED.message
    assert "status" not in cluster.desks["bob"]
    assert "status" not in cluster.desks["carol"]


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [DeskState.EXPIRED, DeskState.TERMINATING])
async def test_final_states_are_left_alone(cluster, sweeper, state):
    cluster.add_desk("alice", expirationTimestamp=PAST)
    set_state(cluster, "alice", state)
    cluster.calls.clear()

    assert await sweeper.sweep_once() == []
    assert "replace_cluster_custom_object" not in cluster.calls
    assert state_of(cluster, "alice") == state.value


@pytest.mark.asyncio
async def test_conflicting_write_skips_only_that_desk(cluster, sweeper):
    cluster.add_desk("alice", expirationTimestamp=PAST)
    cluster.add_desk("bob", expirationTimestamp=PAST)
    cluster.fail("replace_cluster_custom_object", 409)

    expired = await sweeper.sweep_once()

    assert expired == ["bob"]
    assert "status" not in cluster.desks["alice"]
    assert state_of(cluster, "bob") == "Expired"


@pytest.mark.asyncio
async def test_run_survives_listing_failures_and_stops_on_cancel(logger):
    def list_desks():
        if desk_client.list.call_count == 1:
            raise client.ApiException(status=500)
        return []

    desk_client = MagicMock()
    desk_client.list.side_effect = list_desks
    sweeper = ExpirationSweeper(logger, desk_client)

    task = asyncio.create_task(sweeper.run(interval_seconds=0.01))
    while desk_client.list.call_count < 2:
        await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
