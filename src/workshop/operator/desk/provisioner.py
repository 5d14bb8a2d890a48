"""
Creation and removal of the Kubernetes objects that make up a Desk.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import kopf
from kubernetes import client

from ...crds.desk import Desk
from ...crds.errors import DeprovisioningError, ProvisioningError
from ...utils.k8s import to_dict
from ..settings import DEFAULT_KUBESHELL_IMAGE
from .resources import (
    build_kubeshell_deployment,
    build_kubeshell_ingress,
    build_kubeshell_service,
    build_namespace,
    build_role_binding,
    build_service_account,
)

VIEW_ROLE = "view"
EDIT_ROLE = "edit"


class ResourceProvisioner:
    """
    Builds a Desk's object graph in a fixed order and tears it down again.

    Every object is owner-referenced to its Desk. Creation is idempotent: an
    object that already exists is read back and used as if it had just been
    created, so a provisioning run that was interrupted converges when it is
    repeated.
    """

    def __init__(
        self,
        logger: logging.Logger,
        core_v1: Optional[client.CoreV1Api] = None,
        rbac_v1: Optional[client.RbacAuthorizationV1Api] = None,
        apps_v1: Optional[client.AppsV1Api] = None,
        networking_v1: Optional[client.NetworkingV1Api] = None,
        domain: Optional[str] = None,
        image: str = DEFAULT_KUBESHELL_IMAGE,
    ) -> None:
        self.logger = logger
        self.core_v1 = core_v1 if core_v1 is not None else client.CoreV1Api()
        self.rbac_v1 = rbac_v1 if rbac_v1 is not None else client.RbacAuthorizationV1Api()
        self.apps_v1 = apps_v1 if apps_v1 is not None else client.AppsV1Api()
        self.networking_v1 = (
            networking_v1 if networking_v1 is not None else client.NetworkingV1Api()
        )
        self.domain = domain
        self.image = image

    async def provision(self, desk: Desk) -> None:
        """
        Create everything a Desk needs.

        Raises:
            ProvisioningError: The first object that could not be created.
                Objects after it in the sequence are not attempted.
        """
        trusted = await self.ensure_namespace(desk, desk.trusted_namespace)
        default = await self.ensure_namespace(desk, desk.default_namespace)
        trusted_ns = trusted["metadata"]["name"]
        default_ns = default["metadata"]["name"]

        service_account = await self._ensure(
            desk,
            "ServiceAccount",
            build_service_account(desk.service_account_name, trusted_ns, desk.name),
            self.core_v1.create_namespaced_service_account,
            self.core_v1.read_namespaced_service_account,
            namespace=trusted_ns,
        )
        sa_name = service_account["metadata"]["name"]

        for role, namespace in ((VIEW_ROLE, trusted_ns), (EDIT_ROLE, default_ns)):
            await self._ensure(
                desk,
                "RoleBinding",
                build_role_binding(role, namespace, sa_name, trusted_ns, desk.name),
                self.rbac_v1.create_namespaced_role_binding,
                self.rbac_v1.read_namespaced_role_binding,
                namespace=namespace,
            )

        await self._ensure(
            desk,
            "Deployment",
            build_kubeshell_deployment(
                namespace=trusted_ns,
                kubectl_namespace=default_ns,
                service_account=sa_name,
                owner=desk.spec.owner or desk.name,
                image=self.image_for(desk),
                desk_name=desk.name,
            ),
            self.apps_v1.create_namespaced_deployment,
            self.apps_v1.read_namespaced_deployment,
            namespace=trusted_ns,
        )
        await self._ensure(
            desk,
            "Service",
            build_kubeshell_service(trusted_ns, desk.name),
            self.core_v1.create_namespaced_service,
            self.core_v1.read_namespaced_service,
            namespace=trusted_ns,
        )

        if self.domain:
            await self._ensure(
                desk,
                "Ingress",
                build_kubeshell_ingress(trusted_ns, desk.name, self.domain),
                self.networking_v1.create_namespaced_ingress,
                self.networking_v1.read_namespaced_ingress,
                namespace=trusted_ns,
            )

        self.logger.info(f"All resources for desk '{desk.name}' are in place.")

    async def ensure_namespace(self, desk: Desk, name: str) -> Dict[str, Any]:
        return await self._ensure(
            desk,
            "Namespace",
            build_namespace(name, desk.name),
            self.core_v1.create_namespace,
            self.core_v1.read_namespace,
        )

    async def deprovision(self, desk: Desk) -> None:
        """
        Delete both of a Desk's namespaces.

        Everything else lives inside them and goes with them. Both deletions
        are attempted even if the first one fails.

        Raises:
            DeprovisioningError: One or both namespaces could not be deleted.
        """
        errors = []
        for namespace in (desk.trusted_namespace, desk.default_namespace):
            try:
                await asyncio.to_thread(
                    self.core_v1.delete_namespace,
                    name=namespace,
                    body=client.V1DeleteOptions(),
                )
                self.logger.info(f"Namespace '{namespace}' of desk '{desk.name}' deleted.")
            except client.ApiException as e:
                if e.status == 404:
                    self.logger.info(
                        f"Namespace '{namespace}' of desk '{desk.name}' is already gone."
                    )
                    continue
                self.logger.error(
                    f"Failed to delete namespace '{namespace}' of desk '{desk.name}': {e}"
                )
                errors.append(e)
        if errors:
            raise DeprovisioningError(errors)

    def image_for(self, desk: Desk) -> str:
        if not desk.spec.version:
            return self.image
        return f"{self.image}:{desk.spec.version}"

    async def _ensure(
        self,
        desk: Desk,
        kind: str,
        body: Dict[str, Any],
        create: Callable[..., Any],
        read: Callable[..., Any],
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Create ``body``, or read it back if it already exists."""
        name = body["metadata"]["name"]
        kopf.append_owner_reference(body, owner=desk.owner_body())
        try:
            created = await asyncio.to_thread(create, body=body, **kwargs)
            self.logger.info(f"{kind} '{name}' created for desk '{desk.name}'.")
            return to_dict(created)
        except client.ApiException as e:
            if e.status != 409:
                self.logger.error(
                    f"Failed to create {kind} '{name}' for desk '{desk.name}': {e}"
                )
                raise ProvisioningError(kind, name, desk.name, e) from e

        self.logger.info(f"{kind} '{name}' for desk '{desk.name}' already exists.")
        try:
            existing = await asyncio.to_thread(read, name=name, **kwargs)
        except client.ApiException as e:
            self.logger.error(
                f"Failed to read existing {kind} '{name}' for desk '{desk.name}': {e}"
            )
            raise ProvisioningError(kind, name, desk.name, e) from e
        return to_dict(existing)
