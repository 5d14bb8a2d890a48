"""
The Desk state machine.

Events from the watch cache are fanned out to one queue per Desk name. Each
queue is drained by a single worker task, so events for the same Desk are
handled strictly in order while different Desks are reconciled concurrently.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from kubernetes import client

from ...crds.client import DeskClient
from ...crds.desk import Desk, DeskState
from ...crds.errors import SyncTimeoutError, WorkshopException
from ...utils.time import format_timestamp
from .cache import DeskWatchCache
from .events import DeskAdded, DeskDeleted, DeskEvent, DeskResync, DeskUpdated
from .garbage import GarbageCollector
from .provisioner import ResourceProvisioner
from .schema import SchemaManager
from .validation import prepare_desk

SYNC_TIMEOUT_SECONDS = 5.0
SYNC_POLL_INTERVAL = 0.5


@dataclass
class TrackedDesk:
    desk: Desk
    provisioned: bool = False


class DeskReconciler:
    def __init__(
        self,
        logger: logging.Logger,
        schema: SchemaManager,
        cache: DeskWatchCache,
        provisioner: ResourceProvisioner,
        collector: GarbageCollector,
        desk_client: DeskClient,
        sync_timeout: float = SYNC_TIMEOUT_SECONDS,
        sync_interval: float = SYNC_POLL_INTERVAL,
        terminate_expired: bool = False,
    ) -> None:
        self.logger = logger
        self.schema = schema
        self.cache = cache
        self.provisioner = provisioner
        self.collector = collector
        self.desk_client = desk_client
        self.sync_timeout = sync_timeout
        self.sync_interval = sync_interval
        self.terminate_expired = terminate_expired

        # Only ever touched from the event loop thread.
        self._registry: Dict[str, TrackedDesk] = {}
        self._queues: Dict[str, Deque[DeskEvent]] = {}
        self._workers: Dict[str, "asyncio.Task[None]"] = {}
        self._dispatcher: Optional["asyncio.Task[None]"] = None

    @property
    def tracked_count(self) -> int:
        return len(self._registry)

    def is_tracked(self, name: str) -> bool:
        return name in self._registry

    async def start(self) -> None:
        """
        Bring the controller up.

        Registers the Desk schema, starts the watch cache and event dispatch,
        waits for the initial listing, then removes namespaces of Desks that
        were deleted while the controller was down.

        Raises:
            SchemaError, AggregateError: The schema could not be established.
            SyncTimeoutError: The cache did not sync in time.
        """
        await self.schema.ensure_schema()
        await self.cache.start()
        self._dispatcher = asyncio.create_task(self._dispatch())

        try:
            await self.wait_for_sync()
        except SyncTimeoutError:
            await self.stop()
            raise

        try:
            await self.collector.sweep_stale()
        except client.ApiException as e:
            self.logger.error(f"Stale namespace sweep failed: {e}")
        self.logger.info("Desk reconciler started.")

    async def wait_for_sync(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.sync_timeout
        while not self.cache.has_synced():
            if loop.time() >= deadline:
                raise SyncTimeoutError(
                    f"Desk cache did not sync within {self.sync_timeout}s"
                )
            await asyncio.sleep(self.sync_interval)

    async def stop(self) -> None:
        """Stop watching and abandon any in-flight reconciliation."""
        await self.cache.stop()
        tasks: List["asyncio.Task[None]"] = list(self._workers.values())
        if self._dispatcher is not None:
            tasks.append(self._dispatcher)
            self._dispatcher = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        self.logger.info("Desk reconciler stopped.")

    def on_namespace_deleted(self, namespace: Dict[str, Any]) -> List[str]:
        """
        Queue a resync for every live Desk that owned a deleted namespace.

        Returns:
            Names of the Desks being healed.
        """
        healed = []
        for desk in self.collector.owning_desks(namespace):
            self.logger.info(
                f"Namespace '{namespace['metadata']['name']}' of live desk "
                f"'{desk.name}' was deleted, restoring it."
            )
            self.submit(DeskResync(desk))
            healed.append(desk.name)
        return healed

    # Dispatch

    async def _dispatch(self) -> None:
        while True:
            event = await self.cache.events.get()
            self.submit(event)

    def submit(self, event: DeskEvent) -> None:
        name = event.name
        self._queues.setdefault(name, deque()).append(event)
        if name not in self._workers:
            self._workers[name] = asyncio.create_task(self._drain(name))

    async def _drain(self, name: str) -> None:
        queue = self._queues[name]
        try:
            while queue:
                event = queue.popleft()
                try:
                    await self._handle(event)
                except (WorkshopException, client.ApiException) as e:
                    self.logger.error(f"Failed to reconcile desk '{name}': {e}")
                except Exception as e:
                    self.logger.error(
                        f"An unexpected error occurred reconciling desk '{name}': {e}",
                        exc_info=True,
                    )
        finally:
            self._workers.pop(name, None)
            if not queue:
                self._queues.pop(name, None)

    async def _handle(self, event: DeskEvent) -> None:
        if isinstance(event, DeskAdded):
            await self._on_added(event.desk)
        elif isinstance(event, DeskUpdated):
            await self._on_updated(event.old, event.new)
        elif isinstance(event, DeskDeleted):
            await self._on_deleted(event.desk)
        elif isinstance(event, DeskResync):
            await self._on_resync(event.desk)

    # State machine

    async def _on_added(self, desk: Desk) -> None:
        tracked = self._registry.get(desk.name)
        if tracked is not None:
            if tracked.desk.uid == desk.uid:
                # Seen before, e.g. re-announced by a relist.
                await self._on_updated(tracked.desk, desk)
            else:
                await self._on_recreated(tracked.desk, desk)
            return

        self.logger.info(f"Desk '{desk.name}' added (state: {desk.state or 'new'}).")
        tracked = self._registry[desk.name] = TrackedDesk(desk)

        if desk.state in (None, DeskState.INITIALIZING):
            await self._bring_up(tracked)
        elif desk.state in (DeskState.READY, DeskState.EXPIRED):
            await self.provisioner.provision(desk)
            tracked.provisioned = True
            if desk.state == DeskState.EXPIRED and self.terminate_expired:
                await self._terminate(tracked)
        elif desk.state == DeskState.TERMINATING and self.terminate_expired:
            # A previous run marked it but did not get to delete it.
            await self._delete_desk(desk)

    async def _on_updated(self, old: Desk, new: Desk) -> None:
        if old.resource_version and old.resource_version == new.resource_version:
            return

        tracked = self._registry.get(new.name)
        if tracked is None:
            await self._on_added(new)
            return
        if tracked.desk.uid and new.uid and tracked.desk.uid != new.uid:
            await self._on_recreated(tracked.desk, new)
            return
        tracked.desk = new

        if not tracked.provisioned and new.state in (None, DeskState.INITIALIZING):
            # Provisioning failed or never ran; every update is a retry.
            await self._bring_up(tracked)
            return

        if old.status != new.status:
            self.logger.info(
                f"Desk '{new.name}' changed state: {old.state} -> {new.state}."
            )
            if new.state == DeskState.EXPIRED and self.terminate_expired:
                await self._terminate(tracked)
        elif old.spec != new.spec:
            # Changes to an existing Desk's spec are not applied to its resources.
            self.logger.info(
                f"Desk '{new.name}' spec changed, existing resources are left as they are."
            )

    async def _on_deleted(self, desk: Desk) -> None:
        self.logger.info(f"Desk '{desk.name}' deleted, removing its namespaces.")
        try:
            await self.provisioner.deprovision(desk)
        finally:
            self._registry.pop(desk.name, None)

    async def _on_recreated(self, old: Desk, new: Desk) -> None:
        """
        A Desk was deleted and created again under the same name without the
        deletion being observed, e.g. while the watch was down and a relist
        reported the new object as an update of the old one.

        The old Desk's namespaces still point at the old uid. They are removed
        before the new Desk is brought up from scratch.
        """
        self.logger.info(
            f"Desk '{new.name}' was re-created (uid {old.uid} -> {new.uid}), "
            "replacing its resources."
        )
        try:
            await self._on_deleted(old)
        except WorkshopException as e:
            self.logger.error(f"Failed to remove resources of the previous desk '{old.name}': {e}")
        await self._on_added(new)

    async def _on_resync(self, desk: Desk) -> None:
        tracked = self._registry.get(desk.name)
        if tracked is None or tracked.desk.uid != desk.uid:
            return
        if tracked.desk.state == DeskState.TERMINATING:
            return
        await self.provisioner.provision(tracked.desk)
        tracked.provisioned = True

    async def _bring_up(self, tracked: TrackedDesk) -> None:
        desk = tracked.desk
        if desk.state is None:
            desk = await self._write(tracked, prepare_desk(desk))
            expiration = desk.spec.expiration_timestamp
            self.logger.info(
                f"Desk '{desk.name}' initializing with version '{desk.spec.version}', "
                f"expiring at {format_timestamp(expiration) if expiration else 'never'}."
            )

        await self.provisioner.provision(desk)
        tracked.provisioned = True
        await self._write(tracked, tracked.desk.with_status(DeskState.READY))
        self.logger.info(f"Desk '{desk.name}' is ready.")

    async def _terminate(self, tracked: TrackedDesk) -> None:
        desk = await self._write(tracked, tracked.desk.with_status(DeskState.TERMINATING))
        self.logger.info(f"Desk '{desk.name}' expired, terminating it.")
        await self._delete_desk(desk)

    async def _delete_desk(self, desk: Desk) -> None:
        try:
            await asyncio.to_thread(self.desk_client.delete, desk.name)
        except client.ApiException as e:
            if e.status != 404:
                raise

    async def _write(self, tracked: TrackedDesk, desk: Desk) -> Desk:
        stored = await asyncio.to_thread(self.desk_client.replace, desk)
        tracked.desk = stored
        return stored
