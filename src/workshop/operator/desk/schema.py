"""
Registration of the Desk custom resource definition.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from kubernetes import client

from ...crds.const import (
    CRD_GROUP,
    CRD_KIND_DESK,
    CRD_NAME_DESK,
    CRD_PLURAL_DESK,
    CRD_VERSION,
)
from ...crds.desk import DeskState
from ...crds.errors import (
    AggregateError,
    SchemaNamesConflictError,
    SchemaNotEstablishedError,
)
from ...utils.k8s import to_dict

ESTABLISH_POLL_INTERVAL = 0.5
ESTABLISH_TIMEOUT = 60.0


def build_desk_crd() -> Dict[str, Any]:
    """Builds the CustomResourceDefinition registering the Desk kind."""
    openapi_schema = {
        "type": "object",
        "properties": {
            "spec": {
                "type": "object",
                "properties": {
                    "owner": {"type": "string"},
                    "version": {"type": "string"},
                    "expirationTimestamp": {"type": "string", "format": "date-time"},
                },
            },
            "status": {
                "type": "object",
                "properties": {
                    "state": {
                        "type": "string",
                        "enum": [state.value for state in DeskState],
                    },
                    "message": {"type": "string"},
                },
            },
        },
    }
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": CRD_NAME_DESK},
        "spec": {
            "group": CRD_GROUP,
            "scope": "Cluster",
            "names": {
                "plural": CRD_PLURAL_DESK,
                "singular": CRD_KIND_DESK.lower(),
                "kind": CRD_KIND_DESK,
                "shortNames": ["dk"],
            },
            "versions": [
                {
                    "name": CRD_VERSION,
                    "served": True,
                    "storage": True,
                    "schema": {"openAPIV3Schema": openapi_schema},
                    "additionalPrinterColumns": [
                        {"name": "Owner", "type": "string", "jsonPath": ".spec.owner"},
                        {"name": "Version", "type": "string", "jsonPath": ".spec.version"},
                        {"name": "State", "type": "string", "jsonPath": ".status.state"},
                        {
                            "name": "Expiration",
                            "type": "date",
                            "jsonPath": ".spec.expirationTimestamp",
                        },
                        {
                            "name": "Age",
                            "type": "date",
                            "jsonPath": ".metadata.creationTimestamp",
                        },
                    ],
                }
            ],
        },
    }


class SchemaManager:
    """Creates the Desk CRD, waits for it to become usable, and removes it."""

    def __init__(
        self,
        logger: logging.Logger,
        api: Optional[client.ApiextensionsV1Api] = None,
        timeout: float = ESTABLISH_TIMEOUT,
        interval: float = ESTABLISH_POLL_INTERVAL,
    ) -> None:
        self.logger = logger
        self.api = api if api is not None else client.ApiextensionsV1Api()
        self.timeout = timeout
        self.interval = interval

    async def ensure_schema(self) -> None:
        """
        Create the Desk CRD and block until the API server reports it
        Established.

        An already existing definition counts as success. If the definition
        cannot be established (name conflict or timeout) it is deleted again and
        the raised error carries the deletion failure too, if there was one.
        """
        try:
            await asyncio.to_thread(
                self.api.create_custom_resource_definition, body=build_desk_crd()
            )
        except client.ApiException as e:
            if e.status == 409:
                self.logger.info(
                    f"CustomResourceDefinition '{CRD_NAME_DESK}' already exists, continuing."
                )
                return
            raise
        self.logger.info(f"CustomResourceDefinition '{CRD_NAME_DESK}' created.")

        try:
            await self._wait_established()
        except (client.ApiException, SchemaNamesConflictError, SchemaNotEstablishedError) as e:
            errors: list = [e]
            try:
                await asyncio.to_thread(
                    self.api.delete_custom_resource_definition, name=CRD_NAME_DESK
                )
            except client.ApiException as delete_error:
                errors.append(delete_error)
            if len(errors) > 1:
                raise AggregateError(errors) from e
            raise
        self.logger.info(f"CustomResourceDefinition '{CRD_NAME_DESK}' is established.")

    async def _wait_established(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            crd = to_dict(
                await asyncio.to_thread(
                    self.api.read_custom_resource_definition, name=CRD_NAME_DESK
                )
            )
            conditions = (crd.get("status") or {}).get("conditions") or []
            for condition in conditions:
                if condition.get("type") == "Established" and condition.get("status") == "True":
                    return
                if condition.get("type") == "NamesAccepted" and condition.get("status") == "False":
                    raise SchemaNamesConflictError(
                        f"CustomResourceDefinition '{CRD_NAME_DESK}' name conflict: "
                        f"{condition.get('reason')}"
                    )
            if loop.time() >= deadline:
                raise SchemaNotEstablishedError(
                    f"CustomResourceDefinition '{CRD_NAME_DESK}' was not established "
                    f"within {self.timeout}s"
                )
            await asyncio.sleep(self.interval)

    async def teardown(self) -> None:
        """Delete the Desk CRD. Any API error, 404 included, is raised."""
        await asyncio.to_thread(
            self.api.delete_custom_resource_definition, name=CRD_NAME_DESK
        )
        self.logger.info(f"CustomResourceDefinition '{CRD_NAME_DESK}' deleted.")
