"""Delivery record storage for Courier.

Provides methods to create, update, query and purge delivery records.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from courier.models import Delivery, DeliveryPage, DeliveryStatus

from .adapters import PersistenceAdapter
from .base import RecordStore

logger = logging.getLogger(__name__)


class DeliveryStore(RecordStore[Delivery]):
    """CRUD and query store for delivery records."""

    collection = "deliveries"
    model = Delivery

    def __init__(self, adapter: PersistenceAdapter) -> None:
        super().__init__(adapter)

    async def create(self, delivery: Delivery) -> Delivery:
        """Persist a new delivery record."""
        return await self._insert(delivery)

    async def update(
        self,
        delivery_id: str,
        mutator: Callable[[Delivery], None],
        keep_on_failure: bool = False,
    ) -> Delivery | None:
        """Atomically apply ``mutator`` to the stored delivery.

        Attempt outcomes pass ``keep_on_failure`` so a failed snapshot never
        discards the result of an HTTP call that already happened.

        Returns:
            The updated Delivery, or None if it was deleted meanwhile.
        """
        return await self._mutate(delivery_id, mutator, keep_on_failure)

    async def delete(self, delivery_id: str) -> bool:
        return await self._remove(delivery_id)

    def get(self, delivery_id: str) -> Delivery | None:
        return self._get(delivery_id)

    def all(self) -> list[Delivery]:
        return self._values()

    def query(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DeliveryPage:
        """List deliveries newest first, optionally filtered.

        Args:
            subscription_id: Only deliveries for this subscription.
            status: Only deliveries in this status.
            limit: Page size.
            offset: Number of matching deliveries to skip.

        Returns:
            DeliveryPage with the slice and the total match count.
        """
        if subscription_id is not None:
            deliveries = self.for_subscription(subscription_id)
        else:
            deliveries = self._values()
        if status is not None:
            deliveries = [d for d in deliveries if d.status == status]

        deliveries.sort(key=lambda d: d.created_at, reverse=True)

        return DeliveryPage(
            items=deliveries[offset : offset + limit],
            total=len(deliveries),
            limit=limit,
            offset=offset,
        )

    def for_subscription(self, subscription_id: str) -> list[Delivery]:
        return [d for d in self._values() if d.subscription_id == subscription_id]

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete deliveries created before ``cutoff``.

        Returns:
            Number of deliveries deleted.
        """
        stale = [d.id for d in self._values() if d.created_at < cutoff]
        deleted = await self._remove_many(stale)
        if deleted:
            logger.info("Purged %d deliveries created before %s", deleted, cutoff.isoformat())
        return deleted


__all__ = ["DeliveryStore"]
