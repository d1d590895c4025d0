"""Courier service layer.

This module provides the WebhookService that composes the registry,
delivery store, executor, retry scheduler, dispatcher, integrations and
retention sweeper behind one interface.

Example:
    ```python
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        sub = await courier.register_subscription(
            {"url": "https://example.com/hook", "events": ["document.processed"]}
        )
        await courier.trigger("document.processed", {"documentId": "doc_1"})

        page = courier.list_deliveries(subscription_id=sub.id)
        for delivery in page.items:
            print(delivery.status, delivery.response_status)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from courier.config import Settings
from courier.exceptions import PersistenceError
from courier.integrations import (
    ChatSender,
    EmailSender,
    IntegrationExecutor,
    build_handlers,
)
from courier.logging import get_logger
from courier.storage import (
    DeliveryStore,
    InMemoryAdapter,
    JsonFileAdapter,
    PersistenceAdapter,
    SubscriptionRegistry,
)
from courier.webhooks import (
    AsyncioScheduler,
    DeliveryExecutor,
    EventDispatcher,
    RetentionSweeper,
    RetryScheduler,
    Scheduler,
)

from .deliveries import DeliveriesMixin
from .integrations import IntegrationsMixin
from .subscriptions import SubscriptionsMixin

logger = get_logger(__name__)


@dataclass
class WebhookService(SubscriptionsMixin, DeliveriesMixin, IntegrationsMixin):
    """High-level facade over the delivery engine.

    This service provides:
    - register/update/delete subscriptions
    - trigger(): queue an event for fan-out
    - list/get/retry/delete deliveries and aggregate stats
    - create/execute integrations and browse templates

    Uses dependency injection for storage, scheduler and HTTP, making it
    easy to test and configure. Components left as None are built from
    ``settings`` in ``__post_init__``.

    Attributes:
        settings: Configuration settings.
        registry: Subscription and integration store.
        deliveries: Delivery record store.
        scheduler: Timer scheduler for retries and retention.
        executor: HTTP delivery executor.
        retries: Attempt runner and retry timers.
        dispatcher: Event queue and fan-out worker.
        integrations: Integration executor.
        sweeper: Retention sweeper.
    """

    settings: Settings
    registry: SubscriptionRegistry
    deliveries: DeliveryStore
    scheduler: Scheduler
    executor: DeliveryExecutor
    retries: RetryScheduler = field(default=None)  # type: ignore[assignment]
    dispatcher: EventDispatcher = field(default=None)  # type: ignore[assignment]
    integrations: IntegrationExecutor = field(default=None)  # type: ignore[assignment]
    sweeper: RetentionSweeper = field(default=None)  # type: ignore[assignment]
    email_sender: EmailSender | None = None
    chat_sender: ChatSender | None = None

    _started: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        """Build the components that were not injected."""
        settings = self.settings
        if self.retries is None:
            self.retries = RetryScheduler(
                self.executor,
                self.deliveries,
                self.registry,
                self.scheduler,
                max_delay_ms=settings.retry_max_delay_ms,
            )
        if self.dispatcher is None:
            self.dispatcher = EventDispatcher(
                self.registry,
                self.deliveries,
                self.retries,
                queue_capacity=settings.queue_capacity,
                overflow=settings.queue_overflow,
                max_concurrent=settings.max_concurrent_deliveries,
            )
        if self.integrations is None:
            self.integrations = IntegrationExecutor(
                self.registry,
                build_handlers(self.executor, self.email_sender, self.chat_sender),
            )
        if self.sweeper is None:
            self.sweeper = RetentionSweeper(
                self.deliveries,
                self.scheduler,
                retention_days=settings.retention_days,
                interval_hours=settings.retention_interval_hours,
            )

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        adapter: PersistenceAdapter | None = None,
        scheduler: Scheduler | None = None,
        http_client: httpx.AsyncClient | None = None,
        email_sender: EmailSender | None = None,
        chat_sender: ChatSender | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            adapter: Persistence adapter. Defaults to JSON files under
                ``settings.data_dir``, or memory when it is unset.
            scheduler: Timer scheduler. Defaults to AsyncioScheduler.
            http_client: Shared HTTP client for deliveries, owned by the caller.
                A short-lived client is used per request when omitted.
            email_sender: Email transport for email integrations.
            chat_sender: Transport for chat integrations.

        Returns:
            Configured WebhookService instance.

        Example:
            ```python
            settings = Settings(data_dir="/var/lib/courier", queue_overflow="reject")
            async with WebhookService.create(settings) as courier:
                ...
            ```
        """
        if settings is None:
            settings = Settings()

        if adapter is None:
            adapter = (
                JsonFileAdapter(settings.data_dir) if settings.data_dir else InMemoryAdapter()
            )

        return cls(
            settings=settings,
            registry=SubscriptionRegistry(adapter, settings.default_retry_policy),
            deliveries=DeliveryStore(adapter),
            scheduler=scheduler or AsyncioScheduler(),
            executor=DeliveryExecutor(
                user_agent=settings.user_agent,
                timeout_seconds=settings.delivery_timeout_seconds,
                response_body_limit=settings.response_body_limit,
                client=http_client,
            ),
            email_sender=email_sender,
            chat_sender=chat_sender,
        )

    async def initialize(self, start_workers: bool = True) -> None:
        """Load stored state and start background work.

        Args:
            start_workers: Start the dispatcher worker, the retention
                sweeper and resume unfinished deliveries. Tests that drive
                the engine by hand pass False.
        """
        await self.registry.load()
        await self.deliveries.load()

        if not start_workers:
            return

        self.dispatcher.start()
        self.sweeper.start()
        self.retries.resume(self.deliveries.all())
        self._started = True
        logger.info(
            "Courier service started",
            subscriptions=len(self.registry.list_subscriptions()),
            deliveries=len(self.deliveries),
        )

    async def close(self) -> None:
        """Drain queued events, disarm timers and release resources."""
        await self.dispatcher.stop(drain=True)
        self.sweeper.stop()
        self.retries.cancel_all()
        await self.scheduler.close()
        try:
            await self.deliveries.flush()
        except PersistenceError as e:
            logger.error("Unsaved delivery changes lost on close", error=str(e))
        if self._started:
            logger.info("Courier service stopped")
        self._started = False

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["WebhookService"]
