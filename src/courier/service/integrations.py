"""Integration mixin for WebhookService."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from courier.exceptions import NotFoundError
from courier.integrations import get_template as _get_template
from courier.integrations import list_templates as _list_templates
from courier.logging import get_logger

if TYPE_CHECKING:
    from courier.integrations import IntegrationExecutor
    from courier.models import (
        Integration,
        IntegrationCreate,
        IntegrationTemplate,
        IntegrationUpdate,
    )
    from courier.storage import SubscriptionRegistry

logger = get_logger(__name__)


class IntegrationsMixin:
    """Mixin providing integration management and execution.

    Expects these attributes from the base class:
    - registry: SubscriptionRegistry
    - integrations: IntegrationExecutor
    """

    registry: SubscriptionRegistry
    integrations: IntegrationExecutor

    def list_templates(self, category: str | None = None) -> list[IntegrationTemplate]:
        return _list_templates(category)

    def get_template(self, template_id: str) -> IntegrationTemplate:
        return _get_template(template_id)

    async def create_integration(
        self, data: IntegrationCreate | dict[str, Any]
    ) -> Integration:
        """Register an integration.

        Raises:
            ConfigError: If the integration or its type-specific config is invalid.
        """
        integration = await self.registry.create_integration(data)
        logger.info(
            "Integration created",
            integration_id=integration.id,
            type=integration.type.value,
        )
        return integration

    async def update_integration(
        self, integration_id: str, data: IntegrationUpdate | dict[str, Any]
    ) -> Integration:
        return await self.registry.update_integration(integration_id, data)

    async def delete_integration(self, integration_id: str) -> None:
        """Delete an integration.

        Raises:
            NotFoundError: If the integration does not exist.
        """
        if not await self.registry.delete_integration(integration_id):
            raise NotFoundError("integration", integration_id)

    def get_integration(self, integration_id: str) -> Integration:
        integration = self.registry.get_integration(integration_id)
        if integration is None:
            raise NotFoundError("integration", integration_id)
        return integration

    def list_integrations(self) -> list[Integration]:
        return self.registry.list_integrations()

    async def execute_integration(self, integration_id: str, data: Any) -> dict[str, Any]:
        """Run an integration once; errors propagate after usage is recorded.

        Raises:
            NotFoundError: If the integration does not exist.
            ConfigError: If it is inactive or its type cannot be executed.
            DeliveryError: If the outbound call failed.
        """
        return await self.integrations.execute(integration_id, data)


__all__ = ["IntegrationsMixin"]
