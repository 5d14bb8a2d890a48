"""
Cleanup of namespaces left behind by Desks that no longer exist.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from kubernetes import client

from ...crds.const import CRD_GROUP, CRD_KIND_DESK
from ...crds.desk import Desk
from ...utils.k8s import owner_references, to_dict
from .cache import DeskWatchCache


def is_desk_reference(ref: Dict[str, Any]) -> bool:
    api_version = ref.get("apiVersion") or ""
    return ref.get("kind") == CRD_KIND_DESK and api_version.split("/")[0] == CRD_GROUP


def desk_owner_names(obj: Dict[str, Any]) -> List[str]:
    """Names of the Desks listed as owners of ``obj``."""
    return [ref.get("name") for ref in owner_references(obj) if is_desk_reference(ref)]


class GarbageCollector:
    def __init__(
        self,
        logger: logging.Logger,
        cache: DeskWatchCache,
        core_v1: Optional[client.CoreV1Api] = None,
    ) -> None:
        self.logger = logger
        self.cache = cache
        self.core_v1 = core_v1 if core_v1 is not None else client.CoreV1Api()

    async def sweep_stale(self) -> List[str]:
        """
        Delete every namespace owned by a Desk the cache does not know about.

        Must run after the cache has synced, otherwise live Desks look stale.
        A failed deletion is logged and the sweep moves on to the next
        namespace; a failure to list namespaces at all is raised.

        Returns:
            Names of the namespaces that were deleted.
        """
        namespaces = to_dict(await asyncio.to_thread(self.core_v1.list_namespace))
        live = self.cache.names()
        deleted = []

        for namespace in namespaces.get("items") or []:
            meta = namespace.get("metadata") or {}
            name = meta.get("name")
            owners = desk_owner_names(namespace)
            if not owners or any(owner in live for owner in owners):
                continue
            if meta.get("deletionTimestamp"):
                # Already on its way out.
                continue

            self.logger.info(
                f"Namespace '{name}' belongs to deleted desk(s) {', '.join(owners)}, deleting it."
            )
            try:
                await asyncio.to_thread(
                    self.core_v1.delete_namespace,
                    name=name,
                    body=client.V1DeleteOptions(),
                )
            except client.ApiException as e:
                if e.status == 404:
                    continue
                self.logger.error(f"Failed to delete stale namespace '{name}': {e}")
                continue
            deleted.append(name)

        if deleted:
            self.logger.info(f"Garbage collected {len(deleted)} stale namespace(s).")
        return deleted

    def owning_desks(self, namespace: Dict[str, Any]) -> List[Desk]:
        """
        The live Desks that own ``namespace``.

        Used to heal a Desk whose namespace was deleted out from under it. An
        owner reference whose uid does not match the cached Desk points at an
        earlier Desk of the same name and is ignored.
        """
        desks = []
        for ref in owner_references(namespace):
            if not is_desk_reference(ref):
                continue
            desk = self.cache.get(ref.get("name") or "")
            if desk is None:
                continue
            if ref.get("uid") and desk.uid and ref["uid"] != desk.uid:
                continue
            desks.append(desk)
        return desks
