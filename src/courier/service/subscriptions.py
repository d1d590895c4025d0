"""Subscription and event mixin for WebhookService.

Provides registration, event triggering, signature verification and
endpoint probing.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from courier.exceptions import NotFoundError, ValidationError
from courier.logging import get_logger
from courier.webhooks import verify_signature as _verify_signature

from .models import EndpointTestResult, SignatureCheck

if TYPE_CHECKING:
    from courier.config import Settings
    from courier.models import Event, Subscription, SubscriptionCreate, SubscriptionUpdate
    from courier.storage import SubscriptionRegistry
    from courier.webhooks import DeliveryExecutor, EventDispatcher, RetryScheduler

logger = get_logger(__name__)


class SubscriptionsMixin:
    """Mixin providing subscription management and event triggering.

    Expects these attributes from the base class:
    - settings: Settings
    - registry: SubscriptionRegistry
    - executor: DeliveryExecutor
    - retries: RetryScheduler
    - dispatcher: EventDispatcher
    """

    settings: Settings
    registry: SubscriptionRegistry
    executor: DeliveryExecutor
    retries: RetryScheduler
    dispatcher: EventDispatcher

    async def register_subscription(
        self, data: SubscriptionCreate | dict[str, Any]
    ) -> Subscription:
        """Register a webhook endpoint.

        Raises:
            ConfigError: If the registration is invalid.
        """
        subscription = await self.registry.register(data)
        logger.info(
            "Subscription registered",
            subscription_id=subscription.id,
            events=subscription.events,
        )
        return subscription

    async def update_subscription(
        self, subscription_id: str, data: SubscriptionUpdate | dict[str, Any]
    ) -> Subscription:
        """Partially update a subscription.

        Deliveries already created keep the URL they were dispatched with.

        Raises:
            ConfigError: If the update is invalid.
            NotFoundError: If the subscription does not exist.
        """
        return await self.registry.update(subscription_id, data)

    async def delete_subscription(self, subscription_id: str) -> None:
        """Delete a subscription and disarm its pending retries.

        Delivery records are kept for history.

        Raises:
            NotFoundError: If the subscription does not exist.
        """
        if self.registry.get(subscription_id) is None:
            raise NotFoundError("subscription", subscription_id)
        self.retries.cancel_for_subscription(subscription_id)
        if not await self.registry.delete(subscription_id):
            raise NotFoundError("subscription", subscription_id)
        logger.info("Subscription deleted", subscription_id=subscription_id)

    def get_subscription(self, subscription_id: str) -> Subscription:
        """Get a subscription.

        Raises:
            NotFoundError: If the subscription does not exist.
        """
        subscription = self.registry.get(subscription_id)
        if subscription is None:
            raise NotFoundError("subscription", subscription_id)
        return subscription

    def list_subscriptions(self, active_only: bool = False) -> list[Subscription]:
        return self.registry.list_subscriptions(active_only=active_only)

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
        """Queue an event for delivery to matching subscriptions.

        Delivery failures never surface here; inspect deliveries instead.

        Raises:
            ValidationError: If the event type is empty.
            QueueFullError: If the queue is full and overflow is 'reject'.
        """
        event = await self.dispatcher.trigger(
            event_type,
            data,
            source=source,
            user_id=user_id,
            session_id=session_id,
            metadata=metadata,
        )
        logger.debug("Event queued", event_id=event.id, event_type=event.type)
        return event

    def verify_signature(self, payload: str | bytes, signature: str, secret: str) -> SignatureCheck:
        """Check a payload signature the way a subscriber would."""
        valid = _verify_signature(payload, signature, secret)
        return SignatureCheck(
            valid=valid,
            message="Signature is valid" if valid else "Signature is invalid",
        )

    async def test_endpoint(
        self, url: str, payload: Any = None
    ) -> EndpointTestResult:
        """Send a one-off probe to a candidate webhook URL.

        No delivery record is created and nothing is retried.

        Raises:
            ValidationError: If the URL is not an absolute http(s) URL.
        """
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as e:
            raise ValidationError("url", str(e)) from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValidationError("url", "must be an absolute http(s) URL")

        if payload is None:
            payload = {"test": True, "timestamp": datetime.now(UTC).isoformat()}

        result = await self.executor.post_json(
            url,
            payload,
            timeout=self.settings.test_timeout_seconds,
            user_agent=self.settings.test_user_agent,
        )
        logger.info(
            "Endpoint probed",
            url=url,
            success=result.success,
            status_code=result.status_code,
        )
        return EndpointTestResult(
            url=url,
            success=result.success,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            response_body=result.response_body,
            error=result.error,
        )


__all__ = ["SubscriptionsMixin"]
