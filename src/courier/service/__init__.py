"""Courier service layer.

Provides the high-level WebhookService facade.

Example:
    ```python
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        await courier.register_subscription(
            {"url": "https://example.com/hook", "events": ["*"]}
        )
        await courier.trigger("document.processed", {"documentId": "doc_1"})
        print(courier.get_stats().success_rate)
    ```
"""

from .base import WebhookService
from .deliveries import MAX_PAGE_SIZE
from .models import EndpointTestResult, SignatureCheck

__all__ = [
    "MAX_PAGE_SIZE",
    "EndpointTestResult",
    "SignatureCheck",
    "WebhookService",
]
