"""
The Desk custom resource: one user's ephemeral workspace.

All types here are frozen. Values handed out by the watch cache are shared
snapshots, so a change is always expressed as a new value built with
``dataclasses.replace`` (see ``Desk.with_status`` and ``Desk.with_spec``).
"""
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.time import format_timestamp, parse_timestamp
from .const import CRD_GROUP, CRD_KIND_DESK, CRD_VERSION

DEFAULT_DESK_VERSION = "latest"
MAX_DESK_LIFESPAN = timedelta(days=14)


class DeskState(str, Enum):
    INITIALIZING = "Initializing"
    READY = "Ready"
    EXPIRED = "Expired"
    TERMINATING = "Terminating"

    def __str__(self) -> str:
        return self.value

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self]


STATUS_MESSAGES = {
    DeskState.INITIALIZING: "Desk is initializing, not ready yet",
    DeskState.READY: "Desk is ready for use",
    DeskState.EXPIRED: "Desk is expired and no longer accessible",
    DeskState.TERMINATING: "Desk is terminating",
}


@dataclass(frozen=True)
class DeskSpec:
    owner: str = ""
    version: str = ""
    expiration_timestamp: Optional[datetime] = None

    @classmethod
    def from_spec(cls, spec: Optional[Dict[str, Any]]) -> "DeskSpec":
        spec = spec or {}
        return cls(
            owner=str(spec.get("owner") or ""),
            version=str(spec.get("version") or ""),
            expiration_timestamp=parse_timestamp(spec.get("expirationTimestamp")),
        )

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"owner": self.owner}
        if self.version:
            body["version"] = self.version
        if self.expiration_timestamp is not None:
            body["expirationTimestamp"] = format_timestamp(self.expiration_timestamp)
        return body


@dataclass(frozen=True)
class DeskStatus:
    state: Optional[DeskState] = None
    message: str = ""

    @classmethod
    def for_state(cls, state: DeskState) -> "DeskStatus":
        return cls(state=state, message=state.message)

    @classmethod
    def from_status(cls, status: Optional[Dict[str, Any]]) -> "DeskStatus":
        status = status or {}
        try:
            state: Optional[DeskState] = DeskState(status.get("state"))
        except ValueError:
            # Unknown or missing states are treated as never prepared.
            state = None
        return cls(state=state, message=str(status.get("message") or ""))

    def to_dict(self) -> Dict[str, Any]:
        if self.state is None:
            return {}
        return {"state": self.state.value, "message": self.message}


@dataclass(frozen=True)
class Desk:
    name: str
    uid: str = ""
    resource_version: str = ""
    creation_timestamp: Optional[datetime] = None
    spec: DeskSpec = field(default_factory=DeskSpec)
    status: DeskStatus = field(default_factory=DeskStatus)
    # Stored metadata as last read, sent back untouched on replace so labels,
    # annotations and finalizers set by the requester survive status writes.
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, body: Dict[str, Any]) -> "Desk":
        meta = body.get("metadata") or {}
        return cls(
            name=meta["name"],
            uid=str(meta.get("uid") or ""),
            resource_version=str(meta.get("resourceVersion") or ""),
            creation_timestamp=parse_timestamp(meta.get("creationTimestamp")),
            spec=DeskSpec.from_spec(body.get("spec")),
            status=DeskStatus.from_status(body.get("status")),
            metadata=copy.deepcopy(meta),
        )

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = copy.deepcopy(self.metadata)
        metadata["name"] = self.name
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        body: Dict[str, Any] = {
            "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
            "kind": CRD_KIND_DESK,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }
        status = self.status.to_dict()
        if status:
            body["status"] = status
        return body

    def owner_body(self) -> Dict[str, Any]:
        """The minimal body needed to reference this Desk as an owner."""
        return {
            "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
            "kind": CRD_KIND_DESK,
            "metadata": {"name": self.name, "uid": self.uid},
        }

    @property
    def state(self) -> Optional[DeskState]:
        return self.status.state

    @property
    def trusted_namespace(self) -> str:
        return f"{self.name}-desk-trusted"

    @property
    def default_namespace(self) -> str:
        return f"{self.name}-desk-default"

    @property
    def service_account_name(self) -> str:
        return self.spec.owner or self.name

    def is_expired(self, now: datetime) -> bool:
        expiration = self.spec.expiration_timestamp
        return expiration is not None and expiration < now

    def with_status(self, state: DeskState) -> "Desk":
        return replace(self, status=DeskStatus.for_state(state))

    def with_spec(self, **changes: Any) -> "Desk":
        return replace(self, spec=replace(self.spec, **changes))
