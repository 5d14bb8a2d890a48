"""
Defaulting and normalization for Desk resources.
"""
from datetime import datetime
from typing import Optional

from ...crds.desk import (
    DEFAULT_DESK_VERSION,
    MAX_DESK_LIFESPAN,
    Desk,
    DeskState,
)
from ...utils.time import utcnow


def max_expiration(desk: Desk, now: Optional[datetime] = None) -> datetime:
    """The latest expiration a Desk may carry: its creation time plus 14 days."""
    base = desk.creation_timestamp or now or utcnow()
    return base + MAX_DESK_LIFESPAN


def prepare_desk(desk: Desk, now: Optional[datetime] = None) -> Desk:
    """
    Default a newly observed Desk's spec and mark it Initializing.

    Out of range expirations are clamped rather than rejected, since there is
    no channel to report a rejection back to whoever created the Desk.

    Args:
        desk: The Desk as observed in the cluster
        now: Current timestamp, used when the Desk has no creation timestamp

    Returns:
        A new Desk value ready to be written back
    """
    latest = max_expiration(desk, now)
    expiration = desk.spec.expiration_timestamp
    if expiration is None or expiration > latest:
        expiration = latest

    return desk.with_spec(
        version=desk.spec.version or DEFAULT_DESK_VERSION,
        expiration_timestamp=expiration,
    ).with_status(DeskState.INITIALIZING)
