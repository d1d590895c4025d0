"""Delivery mixin for WebhookService.

Provides delivery queries, manual retry, stats and retention.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from courier.exceptions import NotFoundError, ValidationError
from courier.logging import get_logger
from courier.models import WebhookStats

if TYPE_CHECKING:
    from courier.models import Delivery, DeliveryPage, DeliveryStatus
    from courier.storage import DeliveryStore, SubscriptionRegistry
    from courier.webhooks import RetentionSweeper, RetryScheduler

logger = get_logger(__name__)

MAX_PAGE_SIZE = 500


class DeliveriesMixin:
    """Mixin providing delivery queries and operator actions.

    Expects these attributes from the base class:
    - registry: SubscriptionRegistry
    - deliveries: DeliveryStore
    - retries: RetryScheduler
    - sweeper: RetentionSweeper
    """

    registry: SubscriptionRegistry
    deliveries: DeliveryStore
    retries: RetryScheduler
    sweeper: RetentionSweeper

    def list_deliveries(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DeliveryPage:
        """List deliveries newest first.

        Args:
            subscription_id: Only deliveries for this subscription.
            status: Only deliveries in this status.
            limit: Page size (1-500).
            offset: Matching deliveries to skip.

        Raises:
            ValidationError: If limit or offset is out of range.
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("limit", f"must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset", "must be non-negative")
        return self.deliveries.query(
            subscription_id=subscription_id, status=status, limit=limit, offset=offset
        )

    def get_delivery(self, delivery_id: str) -> Delivery:
        """Get a delivery.

        Raises:
            NotFoundError: If the delivery does not exist.
        """
        delivery = self.deliveries.get(delivery_id)
        if delivery is None:
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def retry_delivery(self, delivery_id: str) -> Delivery:
        """Re-attempt a delivery now.

        Raises:
            NotFoundError: If the delivery or its subscription does not exist.
            DeliveryStateError: If the delivery already succeeded.
        """
        delivery = await self.retries.retry_now(delivery_id)
        logger.info(
            "Manual retry",
            delivery_id=delivery_id,
            status=delivery.status,
            attempts=delivery.attempts,
        )
        return delivery

    async def delete_delivery(self, delivery_id: str) -> None:
        """Delete a delivery record and disarm its pending retry.

        Raises:
            NotFoundError: If the delivery does not exist.
        """
        self.retries.cancel(delivery_id)
        if not await self.deliveries.delete(delivery_id):
            raise NotFoundError("delivery", delivery_id)
        logger.info("Delivery deleted", delivery_id=delivery_id)

    def get_stats(self) -> WebhookStats:
        """Aggregate subscription and delivery counters."""
        subscriptions = self.registry.list_subscriptions()
        deliveries = self.deliveries.all()

        counts = {"success": 0, "failed": 0, "retrying": 0, "pending": 0}
        durations: list[float] = []
        for delivery in deliveries:
            counts[delivery.status] += 1
            if delivery.duration_ms is not None:
                durations.append(delivery.duration_ms)

        return WebhookStats(
            total_subscriptions=len(subscriptions),
            active_subscriptions=sum(1 for s in subscriptions if s.active),
            total_deliveries=len(deliveries),
            successful_deliveries=counts["success"],
            failed_deliveries=counts["failed"],
            retrying_deliveries=counts["retrying"],
            pending_deliveries=counts["pending"],
            average_response_time_ms=sum(durations) / len(durations) if durations else 0.0,
        )

    async def sweep(self) -> int:
        """Run the retention sweep now.

        Returns:
            Number of deliveries deleted.
        """
        return await self.sweeper.sweep()


__all__ = ["MAX_PAGE_SIZE", "DeliveriesMixin"]
