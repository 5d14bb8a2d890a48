"""
Helpers shared by the test modules.
"""
import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any, Optional

from workshop.crds.client import DeskClient
from workshop.crds.desk import Desk, DeskSpec, DeskState, DeskStatus
from workshop.operator.desk.cache import DeskWatchCache
from workshop.operator.desk.garbage import GarbageCollector
from workshop.operator.desk.provisioner import ResourceProvisioner
from workshop.operator.desk.reconciler import DeskReconciler
from workshop.operator.desk.schema import SchemaManager

CREATED_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_desk(
    name: str = "alice",
    state: Optional[DeskState] = None,
    uid: str = "uid-alice",
    resource_version: str = "1",
    created: Optional[datetime] = CREATED_AT,
    **spec: Any,
) -> Desk:
    """Builds a Desk value without going through a cluster."""
    return Desk(
        name=name,
        uid=uid,
        resource_version=resource_version,
        creation_timestamp=created,
        spec=DeskSpec(**spec),
        status=DeskStatus.for_state(state) if state else DeskStatus(),
    )


def build_reconciler(cluster, logger, domain=None, **kwargs) -> DeskReconciler:
    """A reconciler whose every client is the given fake cluster."""
    cache = DeskWatchCache(
        logger, api=cluster, watch_factory=cluster.watch, timeout_seconds=1, backoff_seconds=0.01
    )
    return DeskReconciler(
        logger=logger,
        schema=SchemaManager(logger, api=cluster, interval=0.01),
        cache=cache,
        provisioner=ResourceProvisioner(
            logger,
            core_v1=cluster,
            rbac_v1=cluster,
            apps_v1=cluster,
            networking_v1=cluster,
            domain=domain,
        ),
        collector=GarbageCollector(logger, cache, core_v1=cluster),
        desk_client=DeskClient(api=cluster),
        sync_interval=0.01,
        **kwargs,
    )


@contextlib.asynccontextmanager
async def running(reconciler: DeskReconciler):
    await reconciler.start()
    try:
        yield reconciler
    finally:
        await reconciler.stop()


async def eventually(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition was not met in time")
        await asyncio.sleep(0.01)


def state_of(cluster, name):
    desk = cluster.desks.get(name)
    return desk.get("status", {}).get("state") if desk else None


def update_desk(cluster, name, **changes):
    """Change ``section__field`` values of a stored Desk, as a user would."""
    body = cluster.get_cluster_custom_object("workshop.io", "v1", "desks", name)
    for key, value in changes.items():
        section, field = key.split("__")
        body.setdefault(section, {})[field] = value
    cluster.replace_cluster_custom_object("workshop.io", "v1", "desks", name, body)
