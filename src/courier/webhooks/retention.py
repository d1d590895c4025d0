"""Periodic purge of old delivery records."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from courier.exceptions import PersistenceError

if TYPE_CHECKING:
    from courier.storage import DeliveryStore

    from .scheduler import CancelToken, Scheduler

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes deliveries older than the retention window on a fixed interval.

    Subscriptions and integrations are never touched. Sweeping is
    idempotent: a second run inside the same window deletes nothing new.
    """

    def __init__(
        self,
        deliveries: DeliveryStore,
        scheduler: Scheduler,
        retention_days: int = 30,
        interval_hours: float = 24,
    ) -> None:
        self._deliveries = deliveries
        self._scheduler = scheduler
        self._retention = timedelta(days=retention_days)
        self._interval_seconds = interval_hours * 3600
        self._token: CancelToken | None = None
        self.last_run_at: datetime | None = None

    @property
    def scheduled(self) -> bool:
        return self._token is not None and not self._token.cancelled

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete deliveries created before ``now - retention``.

        Returns:
            Number of deliveries deleted.
        """
        now = now or datetime.now(UTC)
        cutoff = now - self._retention
        deleted = await self._deliveries.purge_older_than(cutoff)
        self.last_run_at = now
        logger.info("Retention sweep removed %d deliveries older than %s", deleted, cutoff)
        return deleted

    def start(self) -> None:
        """Arm the recurring sweep. The first run happens one interval from now."""
        if self.scheduled:
            return
        self._arm()

    def stop(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    def _arm(self) -> None:
        self._token = self._scheduler.after(self._interval_seconds, self._tick)

    async def _tick(self) -> None:
        try:
            await self.sweep()
        except PersistenceError as e:
            logger.error("Retention sweep failed: %s", e)
        finally:
            if self._token is not None:
                self._arm()


__all__ = ["RetentionSweeper"]
