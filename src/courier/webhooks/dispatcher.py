"""Event dispatch to webhook subscriptions.

Producers call ``trigger`` and move on. Events wait in a bounded queue
and a single worker processes them in trigger order: matching
subscriptions are resolved, a Delivery row is created for each match and
the first attempts fan out concurrently.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import QueueFullError, ValidationError
from courier.models import Delivery, Event

from .filters import matches_filter

if TYPE_CHECKING:
    from courier.config import QueueOverflowPolicy
    from courier.models import Subscription
    from courier.storage import DeliveryStore, SubscriptionRegistry

    from .retry import RetryScheduler

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Queues events and fans them out to matching subscriptions.

    Example:
        ```python
        dispatcher = EventDispatcher(registry, deliveries, retries)
        dispatcher.start()

        await dispatcher.trigger("document.processed", {"documentId": "doc_1"})

        await dispatcher.stop()
        ```
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        deliveries: DeliveryStore,
        retries: RetryScheduler,
        queue_capacity: int = 10000,
        overflow: QueueOverflowPolicy = "block",
        max_concurrent: int = 10,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Source of subscriptions.
            deliveries: Store for delivery records.
            retries: Attempt runner that also owns retry timers.
            queue_capacity: Maximum queued events.
            overflow: What ``trigger`` does on a full queue: wait for room
                (block), evict the oldest queued event (drop_oldest) or
                raise QueueFullError (reject).
            max_concurrent: Maximum first attempts in flight at once.
        """
        self._registry = registry
        self._deliveries = deliveries
        self._retries = retries
        self._capacity = queue_capacity
        self._overflow = overflow
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=queue_capacity)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._worker: asyncio.Task[None] | None = None
        self.dropped_events = 0

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def trigger(
        self,
        event_type: str,
        data: Any = None,
        *,
        source: str = "api",
        user_id: str | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """Build an event and queue it for delivery.

        Returns as soon as the event is queued. Delivery outcomes are only
        visible through delivery records.

        Raises:
            ValidationError: If the event type is empty.
            QueueFullError: If the queue is full and the overflow policy is reject.
        """
        try:
            event = Event(
                type=event_type,
                data=data,
                source=source,
                user_id=user_id,
                session_id=session_id,
                metadata=metadata,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "event"
            raise ValidationError(field, first.get("msg", "invalid value")) from e

        await self.enqueue(event)
        return event

    async def enqueue(self, event: Event) -> None:
        """Queue an already-built event, applying the overflow policy."""
        if self._overflow == "block":
            await self._queue.put(event)
            return

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            if self._overflow == "reject":
                logger.warning("Event queue full; rejecting %s (%s)", event.type, event.id)
                raise QueueFullError(self._capacity) from None

            dropped = self._queue.get_nowait()
            self._queue.task_done()
            self.dropped_events += 1
            logger.warning(
                "Event queue full; dropped oldest event %s (%s)", dropped.type, dropped.id
            )
            self._queue.put_nowait(event)

    def start(self) -> None:
        """Start the background worker. Calling it twice is harmless."""
        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name="courier-event-dispatcher"
        )
        logger.info("Event dispatcher started (capacity %d)", self._capacity)

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker, first processing queued events when ``drain`` is set."""
        if self._worker is None:
            return
        if drain and self.running:
            await self._queue.join()
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.info("Event dispatcher stopped")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process_event(event)
            except Exception:
                logger.exception("Failed to process event %s (%s)", event.type, event.id)
            finally:
                self._queue.task_done()

    def match(self, event: Event) -> list[Subscription]:
        """Active subscriptions whose events and filter accept ``event``."""
        return [
            subscription
            for subscription in self._registry.subscribed_to(event.type)
            if matches_filter(event, subscription.filter)
        ]

    async def process_event(self, event: Event) -> list[str]:
        """Create and attempt one delivery per matching subscription.

        Deliveries to different subscriptions run concurrently and in no
        particular order.

        Returns:
            IDs of the deliveries created.
        """
        subscriptions = self.match(event)
        if not subscriptions:
            logger.debug("No subscriptions matched event %s (%s)", event.type, event.id)
            return []

        results = await asyncio.gather(
            *(self._deliver(subscription, event) for subscription in subscriptions),
            return_exceptions=True,
        )

        delivery_ids: list[str] = []
        for subscription, result in zip(subscriptions, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Delivery of %s to subscription %s failed: %s",
                    event.id,
                    subscription.id,
                    result,
                )
            else:
                delivery_ids.append(result)
        return delivery_ids

    async def _deliver(self, subscription: Subscription, event: Event) -> str:
        delivery = Delivery(
            subscription_id=subscription.id,
            event_id=event.id,
            url=str(subscription.url),
            event=event,
        )
        await self._deliveries.create(delivery)

        async with self._semaphore:
            await self._retries.run_attempt(delivery.id, subscription, 1)

        return delivery.id


__all__ = ["EventDispatcher"]
