from typing import List, Optional

from kubernetes import client

from .const import CRD_GROUP, CRD_PLURAL_DESK, CRD_VERSION
from .desk import Desk


class DeskClient:
    """
    Typed access to the cluster-scoped Desk resource.

    Every call is a blocking round trip; async callers wrap them in
    ``asyncio.to_thread``. Failures surface as ``client.ApiException`` so that
    callers can tell 404 and 409 apart from everything else.
    """

    group = CRD_GROUP
    version = CRD_VERSION
    plural = CRD_PLURAL_DESK

    def __init__(self, api: Optional[client.CustomObjectsApi] = None) -> None:
        self.api = api or client.CustomObjectsApi()

    def get(self, name: str) -> Desk:
        data = self.api.get_cluster_custom_object(
            group=self.group,
            version=self.version,
            plural=self.plural,
            name=name,
        )
        return Desk.from_dict(data)

    def list(self) -> List[Desk]:
        data = self.api.list_cluster_custom_object(
            group=self.group,
            version=self.version,
            plural=self.plural,
        )
        return [Desk.from_dict(item) for item in data.get("items", [])]

    def create(self, desk: Desk) -> Desk:
        data = self.api.create_cluster_custom_object(
            group=self.group,
            version=self.version,
            plural=self.plural,
            body=desk.to_dict(),
        )
        return Desk.from_dict(data)

    def replace(self, desk: Desk) -> Desk:
        """
        Write the whole Desk back.

        The body carries the Desk's resourceVersion, so a concurrent writer
        makes this fail with a 409 instead of silently overwriting.
        """
        data = self.api.replace_cluster_custom_object(
            group=self.group,
            version=self.version,
            plural=self.plural,
            name=desk.name,
            body=desk.to_dict(),
        )
        return Desk.from_dict(data)

    def delete(self, name: str) -> None:
        self.api.delete_cluster_custom_object(
            group=self.group,
            version=self.version,
            plural=self.plural,
            name=name,
            body=client.V1DeleteOptions(),
        )
