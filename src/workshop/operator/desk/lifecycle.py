"""
Desk lifecycle management, including expiration handling.
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from kubernetes import client

from ...crds.client import DeskClient
from ...crds.desk import Desk, DeskState
from ...utils.time import utcnow

# States the sweeper never moves a Desk out of.
FINAL_STATES = (DeskState.EXPIRED, DeskState.TERMINATING)


def should_expire(desk: Desk, now: datetime) -> bool:
    return desk.state not in FINAL_STATES and desk.is_expired(now)


class ExpirationSweeper:
    """
    Periodically marks Desks whose expiration timestamp has passed as Expired.

    Desks are read through the API, never from the watch cache, so the sweep
    always works on the latest stored resourceVersion.
    """

    def __init__(self, logger: logging.Logger, desk_client: DeskClient) -> None:
        self.logger = logger
        self.desk_client = desk_client

    async def sweep_once(self, now: Optional[datetime] = None) -> List[str]:
        """
        Run one expiration pass.

        A Desk whose status write fails (a conflicting concurrent writer, for
        example) is logged and skipped; the pass continues with the rest.

        Returns:
            Names of the Desks moved to Expired.
        """
        now = now or utcnow()
        desks = await asyncio.to_thread(self.desk_client.list)
        expired = []

        for desk in desks:
            if not should_expire(desk, now):
                continue
            try:
                await asyncio.to_thread(
                    self.desk_client.replace, desk.with_status(DeskState.EXPIRED)
                )
            except client.ApiException as e:
                if e.status == 409:
                    self.logger.warning(
                        f"Desk '{desk.name}' changed while expiring it, "
                        "will retry on the next check."
                    )
                elif e.status == 404:
                    self.logger.info(f"Desk '{desk.name}' was deleted before it could expire.")
                else:
                    self.logger.error(f"Failed to expire desk '{desk.name}': {e}")
                continue
            self.logger.info(f"Desk '{desk.name}' has expired.")
            expired.append(desk.name)

        if expired:
            self.logger.info(f"Expired {len(expired)} desk(s) in this check.")
        return expired

    async def run(self, interval_seconds: float = 60) -> None:
        """
        Sweep forever, every ``interval_seconds``, until cancelled.

        A failed pass (for instance, the Desks could not be listed) is logged
        and retried on the next tick.
        """
        while True:
            try:
                self.logger.debug("Running expiration check for desks...")
                await self.sweep_once()
            except client.ApiException as e:
                self.logger.error(f"API error during expiration check: {e}")
            except Exception as e:
                self.logger.error(
                    f"An unexpected error occurred during expiration check: {e}",
                    exc_info=True,
                )

            await asyncio.sleep(interval_seconds)
