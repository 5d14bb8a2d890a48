"""
A locally synchronized mirror of all Desk objects.

The cache lists Desks once, then follows a watch from the listed
resourceVersion. Both feed one store keyed by Desk name, and every change to
the store is published as a typed event on ``events``. The list and watch calls
block, so they run on a worker thread; the store is guarded by a lock and
events are handed to the event loop thread-safely.

Desks are not watched through kopf (``kopf.on.*`` handlers or ``kopf.index``).
Startup has to block until the first full listing is in, and kopf exposes no
such barrier: its watchers start only after the startup handlers finish, while
the stale namespace sweep run from startup needs a complete view. The Desk
schema is also registered by this controller, so it does not exist yet when
kopf would begin watching it.
"""
import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, watch

from ...crds.const import CRD_GROUP, CRD_PLURAL_DESK, CRD_VERSION
from ...crds.desk import Desk
from .events import DeskAdded, DeskDeleted, DeskEvent, DeskUpdated

WATCH_TIMEOUT_SECONDS = 300
RELIST_BACKOFF_SECONDS = 1.0
STOP_TIMEOUT_SECONDS = 5.0


class DeskWatchCache:
    def __init__(
        self,
        logger: logging.Logger,
        api: Optional[client.CustomObjectsApi] = None,
        watch_factory: Callable[[], Any] = watch.Watch,
        timeout_seconds: int = WATCH_TIMEOUT_SECONDS,
        backoff_seconds: float = RELIST_BACKOFF_SECONDS,
    ) -> None:
        self.logger = logger
        self.api = api if api is not None else client.CustomObjectsApi()
        self.watch_factory = watch_factory
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds
        self.events: "asyncio.Queue[DeskEvent]" = asyncio.Queue()

        self._store: Dict[str, Desk] = {}
        self._lock = threading.Lock()
        self._synced = threading.Event()
        self._stopping = threading.Event()
        self._watch: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    # Reads. Returned Desks are frozen snapshots and safe to share.

    def has_synced(self) -> bool:
        """True once the initial listing has been merged into the store."""
        return self._synced.is_set()

    def get(self, name: str) -> Optional[Desk]:
        with self._lock:
            return self._store.get(name)

    def list(self) -> List[Desk]:
        with self._lock:
            return list(self._store.values())

    def names(self) -> set:
        with self._lock:
            return set(self._store)

    # Lifecycle

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopping.clear()
        # Daemon so a watch read blocked on the socket never holds up exit.
        self._thread = threading.Thread(
            target=self._run, name="desk-watch", daemon=True
        )
        self._thread.start()

    async def stop(self, timeout: float = STOP_TIMEOUT_SECONDS) -> None:
        self._stopping.set()
        if self._watch is not None:
            self._watch.stop()
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, timeout)
            if self._thread.is_alive():
                self.logger.warning(
                    f"Desk watch did not stop within {timeout}s, abandoning it."
                )
            self._thread = None

    def _run(self) -> None:
        resource_version: Optional[str] = None
        while not self._stopping.is_set():
            try:
                if resource_version is None:
                    resource_version = self._list_and_replace()
                resource_version = self._watch_from(resource_version)
            except client.ApiException as e:
                if e.status == 410:
                    self.logger.info("Desk watch expired (410 Gone), relisting.")
                else:
                    self.logger.error(f"API error while watching desks: {e}")
                    self._stopping.wait(self.backoff_seconds)
                resource_version = None
            except Exception as e:
                self.logger.error(
                    f"An unexpected error occurred while watching desks: {e}",
                    exc_info=True,
                )
                self._stopping.wait(self.backoff_seconds)
                resource_version = None

    def _list_and_replace(self) -> str:
        data = self.api.list_cluster_custom_object(
            group=CRD_GROUP,
            version=CRD_VERSION,
            plural=CRD_PLURAL_DESK,
        )
        self.replace([Desk.from_dict(item) for item in data.get("items", [])])
        if not self._synced.is_set():
            self._synced.set()
            self.logger.info("Desk cache initialized from the API server.")
        return str((data.get("metadata") or {}).get("resourceVersion") or "")

    def _watch_from(self, resource_version: str) -> Optional[str]:
        """Follow the watch until it times out. Returns the last seen resourceVersion."""
        self._watch = self.watch_factory()
        try:
            for event in self._watch.stream(
                self.api.list_cluster_custom_object,
                group=CRD_GROUP,
                version=CRD_VERSION,
                plural=CRD_PLURAL_DESK,
                resource_version=resource_version,
                timeout_seconds=self.timeout_seconds,
            ):
                if self._stopping.is_set():
                    break
                if event["type"] == "ERROR":
                    status = event.get("raw_object") or event.get("object") or {}
                    raise client.ApiException(
                        status=status.get("code", 500), reason=status.get("message")
                    )
                desk = self.apply(event["type"], event["object"])
                if desk is not None and desk.resource_version:
                    resource_version = desk.resource_version
        finally:
            self._watch.stop()
        return resource_version

    # Store mutations. Each one publishes the matching event.

    def apply(self, event_type: str, obj: Dict[str, Any]) -> Optional[Desk]:
        """Merge one watch event into the store."""
        if event_type not in ("ADDED", "MODIFIED", "DELETED"):
            return None
        desk = Desk.from_dict(obj)
        with self._lock:
            old = self._store.get(desk.name)
            if event_type == "DELETED":
                self._store.pop(desk.name, None)
            else:
                self._store[desk.name] = desk

        if event_type == "DELETED":
            self._emit(DeskDeleted(old or desk))
        elif old is None:
            self._emit(DeskAdded(desk))
        else:
            self._emit(DeskUpdated(old, desk))
        return desk

    def replace(self, desks: List[Desk]) -> None:
        """Merge a full listing, synthesizing events for everything that changed."""
        fresh = {desk.name: desk for desk in desks}
        with self._lock:
            previous = self._store
            self._store = dict(fresh)

        for name, old in previous.items():
            if name not in fresh:
                self._emit(DeskDeleted(old))
        for name, desk in fresh.items():
            old = previous.get(name)
            if old is None:
                self._emit(DeskAdded(desk))
            elif old.resource_version != desk.resource_version:
                self._emit(DeskUpdated(old, desk))

    def _emit(self, event: DeskEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self.events.put_nowait(event)
        else:
            loop.call_soon_threadsafe(self.events.put_nowait, event)
