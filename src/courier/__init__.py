"""Courier: signed webhook delivery with retries.

Accepts internally generated domain events, matches them against
subscriber filters and delivers signed HTTP callbacks with exponential
backoff, delivery bookkeeping and one-shot integrations.

Quick Start:
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        sub = await courier.register_subscription(
            {
                "url": "https://example.com/hooks/courier",
                "events": ["document.processed"],
                "secret": "s3cret",
            }
        )
        await courier.trigger("document.processed", {"documentId": "doc_1"})

        for delivery in courier.list_deliveries(subscription_id=sub.id).items:
            print(delivery.status, delivery.attempts)

Records:
    - Subscription: Registered endpoint with event types, filter and retry policy
    - Event: Immutable domain event
    - Delivery: One logical delivery effort, possibly several attempts
    - Integration: Manually invoked outbound action
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigError,
    CourierError,
    DeliveryError,
    DeliveryStateError,
    FilterEvaluationError,
    NotFoundError,
    PersistenceError,
    QueueFullError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    Delivery,
    DeliveryResult,
    Event,
    FilterCondition,
    FilterSpec,
    Integration,
    IntegrationTemplate,
    IntegrationType,
    RetryPolicy,
    Subscription,
    WebhookStats,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "CourierError",
    "ValidationError",
    "ConfigError",
    "NotFoundError",
    "DeliveryError",
    "DeliveryStateError",
    "FilterEvaluationError",
    "PersistenceError",
    "QueueFullError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Delivery",
    "DeliveryResult",
    "Event",
    "FilterCondition",
    "FilterSpec",
    "Integration",
    "IntegrationTemplate",
    "IntegrationType",
    "RetryPolicy",
    "Subscription",
    "WebhookStats",
]
