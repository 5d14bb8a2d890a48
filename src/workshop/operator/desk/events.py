"""Typed events flowing from the desk cache to the reconciler."""
from dataclasses import dataclass
from typing import Union

from ...crds.desk import Desk


@dataclass(frozen=True)
class DeskAdded:
    desk: Desk

    @property
    def name(self) -> str:
        return self.desk.name


@dataclass(frozen=True)
class DeskUpdated:
    old: Desk
    new: Desk

    @property
    def name(self) -> str:
        return self.new.name


@dataclass(frozen=True)
class DeskDeleted:
    desk: Desk

    @property
    def name(self) -> str:
        return self.desk.name


@dataclass(frozen=True)
class DeskResync:
    """Re-ensure a live Desk's resources, e.g. after one of its namespaces vanished."""

    desk: Desk

    @property
    def name(self) -> str:
        return self.desk.name


DeskEvent = Union[DeskAdded, DeskUpdated, DeskDeleted, DeskResync]
