"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.models import (
    Delivery,
    DeliveryPage,
    FilterSpec,
    RetryPolicy,
    Subscription,
    WebhookStats,
)


class SubscriptionResponse(BaseModel):
    """Subscription as returned by the API. The secret is never echoed.

    Attributes:
        has_secret: Whether deliveries are signed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    url: str
    events: list[str]
    has_secret: bool
    active: bool
    headers: dict[str, str]
    retry_policy: RetryPolicy
    filter: FilterSpec | None
    metadata: dict[str, Any]
    description: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> SubscriptionResponse:
        data = subscription.model_dump(exclude={"secret", "url"})
        return cls(**data, url=str(subscription.url), has_secret=bool(subscription.secret))


class SubscriptionListResponse(BaseModel):
    """Response for listing subscriptions."""

    items: list[SubscriptionResponse]
    count: int


class TriggerRequest(BaseModel):
    """Request body for triggering an event.

    Attributes:
        type: Dot-namespaced event type.
        data: Event payload.
        source: Producing component.
        user_id: Acting user.
        session_id: Session context.
        metadata: Extra context delivered with the event.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, description="Event type, e.g. document.processed")
    data: Any = Field(default=None, description="Event payload")
    source: str = Field(default="api", min_length=1)
    user_id: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] | None = None


class TriggerResponse(BaseModel):
    """Response for a queued event."""

    event_id: str
    type: str
    queued: bool = True


class DeliveryListResponse(BaseModel):
    """One page of deliveries, newest first."""

    items: list[Delivery]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_page(cls, page: DeliveryPage) -> DeliveryListResponse:
        return cls(
            items=page.items,
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            has_more=page.has_more,
        )


class ExecuteIntegrationRequest(BaseModel):
    """Request body for executing an integration."""

    model_config = ConfigDict(extra="forbid")

    data: Any = Field(default=None, description="Payload handed to the integration")


class ExecuteIntegrationResponse(BaseModel):
    """Result of an integration execution."""

    integration_id: str
    result: dict[str, Any]


class EndpointTestRequest(BaseModel):
    """Request body for probing a candidate webhook URL."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(min_length=1)
    payload: Any = Field(default=None, description="Body to send; a small test body if omitted")


class VerifyRequest(BaseModel):
    """Request body for verifying a payload signature.

    Non-string payloads are serialized as compact JSON before checking.
    """

    model_config = ConfigDict(extra="forbid")

    payload: str | dict[str, Any] | list[Any]
    signature: str = Field(min_length=1)
    secret: str = Field(min_length=1)


class StatsResponse(BaseModel):
    """Aggregate delivery statistics."""

    total_subscriptions: int
    active_subscriptions: int
    total_deliveries: int
    successful_deliveries: int
    failed_deliveries: int
    retrying_deliveries: int
    pending_deliveries: int
    success_rate: float
    failure_rate: float
    average_response_time_ms: float
    queue_size: int
    dropped_events: int

    @classmethod
    def from_stats(
        cls, stats: WebhookStats, queue_size: int = 0, dropped_events: int = 0
    ) -> StatsResponse:
        return cls(
            **stats.model_dump(),
            success_rate=round(stats.success_rate, 2),
            failure_rate=round(stats.failure_rate, 2),
            queue_size=queue_size,
            dropped_events=dropped_events,
        )


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    dispatcher_running: bool


__all__ = [
    "DeliveryListResponse",
    "EndpointTestRequest",
    "ExecuteIntegrationRequest",
    "ExecuteIntegrationResponse",
    "HealthResponse",
    "StatsResponse",
    "SubscriptionListResponse",
    "SubscriptionResponse",
    "TriggerRequest",
    "TriggerResponse",
    "VerifyRequest",
]
