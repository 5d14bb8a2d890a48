"""
Custom exception types for the workshop controller.
"""
from typing import List, Sequence


class WorkshopException(Exception):
    """Base exception for all workshop errors."""
    pass


class KubeConfigError(WorkshopException):
    """Raised when the Kubernetes configuration cannot be loaded."""
    pass


class AggregateError(WorkshopException):
    """Several errors that happened while performing one operation."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))


class SchemaError(WorkshopException):
    """The Desk custom resource definition could not be made usable."""
    pass


class SchemaNotEstablishedError(SchemaError):
    pass


class SchemaNamesConflictError(SchemaError):
    pass


class SyncTimeoutError(WorkshopException):
    """The desk cache did not complete its initial listing in time."""
    pass


class ProvisioningError(WorkshopException):
    """Creating one of a Desk's owned objects failed."""

    def __init__(self, kind: str, name: str, desk: str, cause: BaseException) -> None:
        self.kind = kind
        self.name = name
        self.desk = desk
        self.cause = cause
        super().__init__(
            f"could not create {kind} '{name}' for desk '{desk}': {cause}"
        )


class DeprovisioningError(AggregateError):
    """Deleting one or more of a Desk's namespaces failed."""
    pass
