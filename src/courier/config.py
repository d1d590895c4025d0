"""Configuration management for Courier."""

import logging
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from courier.models.subscription import RetryPolicy

logger = logging.getLogger(__name__)

QueueOverflowPolicy = Literal["block", "drop_oldest", "reject"]


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_DATA_DIR=/var/lib/courier
        COURIER_QUEUE_OVERFLOW=reject
        COURIER_DEFAULT_RETRY_POLICY__MAX_RETRIES=5
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    data_dir: str | None = Field(
        default=None,
        description=(
            "Directory for JSON snapshots of subscriptions, deliveries and integrations. "
            "When unset, state is kept in memory only and lost on restart."
        ),
    )

    # Outbound HTTP
    product_name: str = Field(
        default="Courier",
        min_length=1,
        description="Product name used in the outbound User-Agent (<product>-Webhook/1.0)",
    )
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single delivery attempt",
    )
    test_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Timeout for one-off endpoint test probes",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        description="Bytes of the response body kept on a delivery record",
    )

    # Retries
    default_retry_policy: RetryPolicy = Field(
        default_factory=RetryPolicy,
        description="Retry policy applied to subscriptions registered without one",
    )
    retry_max_delay_ms: int | None = Field(
        default=3_600_000,
        gt=0,
        description=(
            "Ceiling for a single backoff delay. None disables the cap and lets "
            "delays grow as base_delay * multiplier^(attempt-1) without bound."
        ),
    )

    # Event queue
    queue_capacity: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of triggered events waiting for the dispatcher",
    )
    queue_overflow: QueueOverflowPolicy = Field(
        default="block",
        description=(
            "What trigger() does when the queue is full: 'block' waits for space, "
            "'drop_oldest' evicts the oldest queued event, 'reject' raises QueueFullError"
        ),
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum first attempts in flight while fanning out one event",
    )

    # Retention
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Delivery records older than this are purged",
    )
    retention_interval_hours: float = Field(
        default=24.0,
        gt=0,
        description="How often the retention sweeper runs",
    )

    # REST API
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins. Use ['*'] for permissive mode (dev only).",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_ceiling(self) -> "Settings":
        """The delay cap must leave room for at least the base delay."""
        if (
            self.retry_max_delay_ms is not None
            and self.retry_max_delay_ms < self.default_retry_policy.base_delay_ms
        ):
            raise ValueError(
                f"retry_max_delay_ms ({self.retry_max_delay_ms}) must be at least "
                f"default_retry_policy.base_delay_ms ({self.default_retry_policy.base_delay_ms})"
            )
        return self

    @model_validator(mode="after")
    def warn_on_volatile_production(self) -> "Settings":
        """Warn when production runs without a snapshot directory."""
        if self.env == "production" and self.data_dir is None:
            warnings.warn(
                "COURIER_DATA_DIR is not set in production. Subscriptions and delivery "
                "history will be lost on restart.",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("Running in production without a data directory")
        return self

    @property
    def user_agent(self) -> str:
        """User-Agent header sent with every webhook delivery."""
        return f"{self.product_name}-Webhook/1.0"

    @property
    def test_user_agent(self) -> str:
        """User-Agent header sent by endpoint test probes."""
        return f"{self.product_name}-Webhook-Test/1.0"


# Global settings instance
settings = Settings()
