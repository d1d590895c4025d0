"""Storage backends for Courier.

This module provides the repositories for subscriptions, integrations and
delivery records, backed by a pluggable persistence adapter.

Example:
    ```python
    from courier.storage import DeliveryStore, JsonFileAdapter, SubscriptionRegistry

    adapter = JsonFileAdapter("/var/lib/courier")
    registry = SubscriptionRegistry(adapter)
    deliveries = DeliveryStore(adapter)
    await registry.load()
    await deliveries.load()
    ```
"""

from .adapters import InMemoryAdapter, JsonFileAdapter, PersistenceAdapter
from .base import KeyedLock, RecordStore
from .deliveries import DeliveryStore
from .registry import SubscriptionRegistry, validate_integration_config

__all__ = [
    "DeliveryStore",
    "InMemoryAdapter",
    "JsonFileAdapter",
    "KeyedLock",
    "PersistenceAdapter",
    "RecordStore",
    "SubscriptionRegistry",
    "validate_integration_config",
]
