"""Subscription and integration registry.

Provides methods to register, retrieve, update and remove webhook
subscriptions and integrations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import ConfigError, NotFoundError
from courier.models import (
    CHAT_TYPES,
    ChatIntegrationConfig,
    EmailIntegrationConfig,
    Integration,
    IntegrationCreate,
    IntegrationType,
    IntegrationUpdate,
    RetryPolicy,
    Subscription,
    SubscriptionCreate,
    SubscriptionUpdate,
    WebhookIntegrationConfig,
)

from .adapters import PersistenceAdapter
from .base import RecordStore

logger = logging.getLogger(__name__)

# Subscription fields an update may change but not clear
_REQUIRED_SUBSCRIPTION_FIELDS = ("url", "events", "active", "headers", "retry_policy", "metadata")

# Config model each integration type must satisfy at registration
INTEGRATION_CONFIG_MODELS: dict[IntegrationType, type[BaseModel]] = {
    IntegrationType.WEBHOOK: WebhookIntegrationConfig,
    IntegrationType.API: WebhookIntegrationConfig,
    IntegrationType.EMAIL: EmailIntegrationConfig,
    **{chat_type: ChatIntegrationConfig for chat_type in CHAT_TYPES},
}


def _config_error(exc: PydanticValidationError, prefix: str = "") -> ConfigError:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "config"
    field = f"{prefix}.{location}" if prefix else location
    return ConfigError(field, first.get("msg", "invalid value"))


def validate_integration_config(
    integration_type: IntegrationType, config: dict[str, Any]
) -> dict[str, Any]:
    """Check ``config`` against the schema for ``integration_type``.

    Types without a registered schema are accepted as-is; executing them
    fails later with an unsupported-type error.

    Raises:
        ConfigError: If the config does not satisfy the type's schema.
    """
    config_model = INTEGRATION_CONFIG_MODELS.get(integration_type)
    if config_model is None:
        return config
    try:
        config_model.model_validate(config)
    except PydanticValidationError as e:
        raise _config_error(e, prefix="config") from e
    return config


class _SubscriptionStore(RecordStore[Subscription]):
    collection = "subscriptions"
    model = Subscription


class _IntegrationStore(RecordStore[Integration]):
    collection = "integrations"
    model = Integration


class SubscriptionRegistry:
    """CRUD store for webhook subscriptions and integrations.

    Example:
        ```python
        registry = SubscriptionRegistry(InMemoryAdapter())
        sub = await registry.register({"url": "https://ex.com/hook", "events": ["*"]})
        matches = registry.subscribed_to("document.processed")
        ```
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        default_retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._subscriptions = _SubscriptionStore(adapter)
        self._integrations = _IntegrationStore(adapter)
        self._default_retry_policy = default_retry_policy or RetryPolicy()

    async def load(self) -> None:
        """Load subscriptions and integrations from the adapter."""
        await self._subscriptions.load()
        await self._integrations.load()

    # Subscriptions

    async def register(self, data: SubscriptionCreate | dict[str, Any]) -> Subscription:
        """Register a new subscription.

        Args:
            data: Registration fields.

        Returns:
            The stored Subscription.

        Raises:
            ConfigError: If the registration is invalid.
        """
        try:
            request = (
                data
                if isinstance(data, SubscriptionCreate)
                else SubscriptionCreate.model_validate(data)
            )
        except PydanticValidationError as e:
            raise _config_error(e) from e

        fields = request.model_dump(exclude={"retry_policy"})
        subscription = Subscription(
            **fields,
            retry_policy=request.retry_policy or self._default_retry_policy.model_copy(),
        )
        await self._subscriptions._insert(subscription)
        logger.info("Subscription registered: %s -> %s", subscription.id, subscription.url)
        return subscription

    async def update(
        self, subscription_id: str, data: SubscriptionUpdate | dict[str, Any]
    ) -> Subscription:
        """Merge the fields the caller set into an existing subscription.

        Raises:
            ConfigError: If the update is invalid.
            NotFoundError: If the subscription does not exist.
        """
        try:
            request = (
                data
                if isinstance(data, SubscriptionUpdate)
                else SubscriptionUpdate.model_validate(data)
            )
        except PydanticValidationError as e:
            raise _config_error(e) from e

        changes = request.model_dump(exclude_unset=True)
        for key in _REQUIRED_SUBSCRIPTION_FIELDS:
            if key in changes and changes[key] is None:
                raise ConfigError(key, "cannot be null")

        def apply(subscription: Subscription) -> None:
            for key in changes:
                setattr(subscription, key, getattr(request, key))
            subscription.updated_at = datetime.now(UTC)

        updated = await self._subscriptions._mutate(subscription_id, apply)
        if updated is None:
            raise NotFoundError("subscription", subscription_id)
        return updated

    async def delete(self, subscription_id: str) -> bool:
        """Remove a subscription. Its delivery records are left in place.

        Returns:
            True if deleted, False if not found.
        """
        deleted = await self._subscriptions._remove(subscription_id)
        if deleted:
            logger.info("Subscription deleted: %s", subscription_id)
        return deleted

    def get(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions._get(subscription_id)

    def list_subscriptions(self, active_only: bool = False) -> list[Subscription]:
        """List subscriptions, oldest first."""
        subscriptions = self._subscriptions._values()
        if active_only:
            subscriptions = [s for s in subscriptions if s.active]
        return sorted(subscriptions, key=lambda s: s.created_at)

    def subscribed_to(self, event_type: str) -> list[Subscription]:
        """Active subscriptions listening for ``event_type`` (directly or via "*")."""
        return [s for s in self.list_subscriptions() if s.subscribes_to(event_type)]

    # Integrations

    async def create_integration(self, data: IntegrationCreate | dict[str, Any]) -> Integration:
        """Register a new integration after validating its config for the type.

        Raises:
            ConfigError: If the integration or its config is invalid.
        """
        try:
            request = (
                data
                if isinstance(data, IntegrationCreate)
                else IntegrationCreate.model_validate(data)
            )
        except PydanticValidationError as e:
            raise _config_error(e) from e

        validate_integration_config(request.type, request.config)
        integration = Integration(**request.model_dump())
        await self._integrations._insert(integration)
        logger.info("Integration created: %s (%s)", integration.id, integration.type.value)
        return integration

    async def update_integration(
        self, integration_id: str, data: IntegrationUpdate | dict[str, Any]
    ) -> Integration:
        """Merge the fields the caller set into an existing integration.

        Raises:
            ConfigError: If the update is invalid.
            NotFoundError: If the integration does not exist.
        """
        try:
            request = (
                data
                if isinstance(data, IntegrationUpdate)
                else IntegrationUpdate.model_validate(data)
            )
        except PydanticValidationError as e:
            raise _config_error(e) from e

        existing = self._integrations._get(integration_id)
        if existing is None:
            raise NotFoundError("integration", integration_id)
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "config" in changes:
            validate_integration_config(existing.type, changes["config"])

        def apply(integration: Integration) -> None:
            for key, value in changes.items():
                setattr(integration, key, value)
            integration.updated_at = datetime.now(UTC)

        updated = await self._integrations._mutate(integration_id, apply)
        if updated is None:
            raise NotFoundError("integration", integration_id)
        return updated

    async def touch_integration(
        self, integration_id: str, mutator: Callable[[Integration], None]
    ) -> Integration | None:
        """Atomically apply ``mutator`` to an integration (used for usage counters)."""
        return await self._integrations._mutate(integration_id, mutator)

    async def delete_integration(self, integration_id: str) -> bool:
        return await self._integrations._remove(integration_id)

    def get_integration(self, integration_id: str) -> Integration | None:
        return self._integrations._get(integration_id)

    def list_integrations(self) -> list[Integration]:
        return sorted(self._integrations._values(), key=lambda i: i.created_at)


__all__ = ["INTEGRATION_CONFIG_MODELS", "SubscriptionRegistry", "validate_integration_config"]
