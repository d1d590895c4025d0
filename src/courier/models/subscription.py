"""Subscription models for registered webhook endpoints.

A subscription names the URL to call, the event types it wants,
an optional signing secret, retry policy and field filter.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import generate_id

# Subscribing to this matches every event type
WILDCARD_EVENT = "*"

FilterOperator = Literal["equals", "contains", "startsWith", "endsWith", "regex"]
FilterLogic = Literal["AND", "OR"]


class RetryPolicy(BaseModel):
    """Exponential backoff policy for failed deliveries.

    The n-th retry waits ``base_delay_ms * backoff_multiplier ** (n - 1)``.
    A delivery makes at most ``max_retries + 1`` attempts.

    Attributes:
        max_retries: Retries after the initial attempt.
        base_delay_ms: Delay before the first retry, in milliseconds.
        backoff_multiplier: Growth factor between successive delays.
    """

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, le=10, description="Retries after first attempt")
    base_delay_ms: int = Field(
        default=1000, gt=0, le=60_000, description="Delay before the first retry (ms)"
    )
    backoff_multiplier: float = Field(
        default=2.0, ge=1.0, le=5.0, description="Growth factor between retry delays"
    )

    @property
    def max_attempts(self) -> int:
        """Initial attempt plus retries."""
        return self.max_retries + 1


class FilterCondition(BaseModel):
    """One predicate over an event field addressed by a dot-path."""

    model_config = ConfigDict(extra="forbid")

    field: str = Field(min_length=1, description="Dot-path into the event, e.g. data.document.id")
    operator: FilterOperator = Field(description="Comparison operator")
    value: str = Field(description="Value to compare against (case-insensitive)")


class FilterSpec(BaseModel):
    """Conditions combined with AND or OR. No conditions matches everything."""

    model_config = ConfigDict(extra="forbid")

    conditions: list[FilterCondition] = Field(default_factory=list)
    logic: FilterLogic = Field(default="AND")


class Subscription(BaseModel):
    """A registered webhook endpoint.

    Attributes:
        id: Unique identifier for this subscription.
        url: Endpoint that receives event callbacks.
        events: Event types to receive; "*" matches all.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        active: Inactive subscriptions receive nothing.
        headers: Extra headers sent with every delivery.
        retry_policy: Backoff policy for failed deliveries.
        filter: Optional field filter evaluated per event.
        metadata: Free-form caller data.
        description: Optional human-readable description.
        created_at: When the subscription was registered.
        updated_at: When the subscription was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("sub"))
    url: HttpUrl = Field(description="Endpoint to receive events")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    secret: str | None = Field(default=None, description="Shared secret for HMAC signatures")
    active: bool = Field(default=True, description="Whether the subscription is active")
    headers: dict[str, str] = Field(default_factory=dict, description="Custom request headers")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    filter: FilterSpec | None = Field(default=None, description="Optional event filter")
    metadata: dict[str, Any] = Field(default_factory=dict)
    description: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this subscription is active and listens for the event type."""
        return self.active and (event_type in self.events or WILDCARD_EVENT in self.events)


class SubscriptionCreate(BaseModel):
    """Fields accepted when registering a subscription."""

    model_config = ConfigDict(extra="forbid")

    url: HttpUrl
    events: list[str] = Field(min_length=1)
    secret: str | None = None
    active: bool = True
    headers: dict[str, str] = Field(default_factory=dict)
    retry_policy: RetryPolicy | None = None
    filter: FilterSpec | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    @field_validator("events")
    @classmethod
    def _no_blank_events(cls, value: list[str]) -> list[str]:
        if any(not event.strip() for event in value):
            raise ValueError("event types must be non-empty strings")
        return value


class SubscriptionUpdate(BaseModel):
    """Partial update; only fields the caller sets are merged."""

    model_config = ConfigDict(extra="forbid")

    url: HttpUrl | None = None
    events: list[str] | None = Field(default=None, min_length=1)
    secret: str | None = None
    active: bool | None = None
    headers: dict[str, str] | None = None
    retry_policy: RetryPolicy | None = None
    filter: FilterSpec | None = None
    metadata: dict[str, Any] | None = None
    description: str | None = None


__all__ = [
    "WILDCARD_EVENT",
    "FilterCondition",
    "FilterLogic",
    "FilterOperator",
    "FilterSpec",
    "RetryPolicy",
    "Subscription",
    "SubscriptionCreate",
    "SubscriptionUpdate",
]
