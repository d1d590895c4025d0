"""One-shot integration execution with usage bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from courier.exceptions import ConfigError, NotFoundError, PersistenceError

if TYPE_CHECKING:
    from courier.models import Integration, IntegrationType
    from courier.storage import SubscriptionRegistry

    from .handlers import IntegrationHandler

logger = logging.getLogger(__name__)


class IntegrationExecutor:
    """Runs integrations through the handler registered for their type.

    Every execution of an existing, active integration bumps its usage
    counters and persists them before the result or error reaches the
    caller. Failures are never retried.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        handlers: Mapping[IntegrationType, IntegrationHandler],
    ) -> None:
        self._registry = registry
        self._handlers = dict(handlers)

    def supports(self, integration_type: IntegrationType) -> bool:
        return integration_type in self._handlers

    async def execute(self, integration_id: str, data: Any) -> dict[str, Any]:
        """Execute an integration once.

        Args:
            integration_id: Integration to run.
            data: Payload handed to the type's handler.

        Returns:
            The handler's result.

        Raises:
            NotFoundError: If the integration does not exist.
            ConfigError: If the integration is inactive, its type has no
                handler or its config is unusable.
            DeliveryError: If the outbound call failed.
        """
        integration = self._registry.get_integration(integration_id)
        if integration is None:
            raise NotFoundError("integration", integration_id)
        if not integration.active:
            raise ConfigError("active", f"integration {integration_id} is inactive")

        try:
            result = await self._run(integration, data)
        except Exception:
            logger.warning("Integration %s (%s) failed", integration_id, integration.type.value)
            try:
                await self._record(integration_id, succeeded=False)
            except PersistenceError as e:
                logger.error("Usage of integration %s not recorded: %s", integration_id, e)
            raise

        await self._record(integration_id, succeeded=True)
        logger.info("Integration %s (%s) executed", integration_id, integration.type.value)
        return result

    async def _run(self, integration: Integration, data: Any) -> dict[str, Any]:
        if not self.supports(integration.type):
            raise ConfigError("type", f"unsupported integration type: {integration.type.value}")
        return await self._handlers[integration.type].execute(integration.config, data)

    async def _record(self, integration_id: str, succeeded: bool) -> None:
        await self._registry.touch_integration(
            integration_id, lambda integration: integration.record_use(succeeded)
        )


__all__ = ["IntegrationExecutor"]
