"""Data models for Courier.

Records:
    - Subscription: A registered webhook endpoint with retry policy and filter
    - Event: Immutable domain event, snapshotted onto each delivery
    - Delivery: One logical delivery effort of an event to a subscription
    - Integration: Manually invoked outbound action with usage counters
    - IntegrationTemplate: Read-only catalog entry

Supporting Types:
    - RetryPolicy, FilterSpec, FilterCondition: Subscription settings
    - DeliveryResult: Outcome of one HTTP attempt
    - DeliveryPage, WebhookStats: Query results
"""

from .base import format_timestamp, generate_id
from .delivery import (
    ATTEMPTABLE_STATUSES,
    TERMINAL_STATUSES,
    Delivery,
    DeliveryPage,
    DeliveryResult,
    DeliveryStatus,
    WebhookStats,
)
from .event import Event
from .integration import (
    CHAT_TYPES,
    ChatIntegrationConfig,
    EmailIntegrationConfig,
    Integration,
    IntegrationCreate,
    IntegrationTemplate,
    IntegrationType,
    IntegrationUpdate,
    WebhookIntegrationConfig,
)
from .subscription import (
    WILDCARD_EVENT,
    FilterCondition,
    FilterSpec,
    RetryPolicy,
    Subscription,
    SubscriptionCreate,
    SubscriptionUpdate,
)

__all__ = [
    # Helpers
    "format_timestamp",
    "generate_id",
    # Subscriptions
    "WILDCARD_EVENT",
    "FilterCondition",
    "FilterSpec",
    "RetryPolicy",
    "Subscription",
    "SubscriptionCreate",
    "SubscriptionUpdate",
    # Events and deliveries
    "ATTEMPTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "Delivery",
    "DeliveryPage",
    "DeliveryResult",
    "DeliveryStatus",
    "Event",
    "WebhookStats",
    # Integrations
    "CHAT_TYPES",
    "ChatIntegrationConfig",
    "EmailIntegrationConfig",
    "Integration",
    "IntegrationCreate",
    "IntegrationTemplate",
    "IntegrationType",
    "IntegrationUpdate",
    "WebhookIntegrationConfig",
]
