"""Integration models for manually invoked outbound actions.

Integrations are reusable actions (post to a chat channel, send an
email, call a webhook) executed on demand rather than per event.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl

from .base import generate_id


class IntegrationType(str, Enum):
    """Kinds of integration a caller can register."""

    WEBHOOK = "webhook"
    API = "api"
    DATABASE = "database"
    FILE = "file"
    EMAIL = "email"
    SLACK = "slack"
    TEAMS = "teams"
    DISCORD = "discord"


CHAT_TYPES: frozenset[IntegrationType] = frozenset(
    {IntegrationType.SLACK, IntegrationType.TEAMS, IntegrationType.DISCORD}
)

TemplateCategory = Literal["communication", "storage", "analytics", "automation", "crm", "other"]


class WebhookIntegrationConfig(BaseModel):
    """Config for ``webhook`` integrations."""

    model_config = ConfigDict(extra="allow")

    url: HttpUrl
    headers: dict[str, str] = Field(default_factory=dict)


class EmailIntegrationConfig(BaseModel):
    """Config for ``email`` integrations."""

    model_config = ConfigDict(extra="allow")

    to: list[EmailStr] = Field(min_length=1)
    subject: str = "Courier Notification"
    template: str | None = Field(
        default=None,
        description="Body template with {placeholders} filled from the execution data",
    )


class ChatIntegrationConfig(BaseModel):
    """Config for ``slack``, ``teams`` and ``discord`` integrations."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    webhook_url: HttpUrl = Field(alias="webhookUrl")
    channel: str | None = None
    username: str | None = None
    avatar_url: HttpUrl | None = Field(default=None, alias="avatarUrl")


class Integration(BaseModel):
    """A registered integration and its usage counters.

    Attributes:
        id: Unique identifier for this integration.
        name: Display name.
        type: Integration kind, selects the executor.
        config: Type-specific settings (validated at registration).
        active: Inactive integrations cannot be executed.
        usage_count: Total executions.
        success_count: Executions that succeeded.
        error_count: Executions that raised.
        last_used: When the integration last ran.
        created_at: When the integration was registered.
        updated_at: When the integration was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("int"))
    name: str = Field(min_length=1)
    type: IntegrationType
    config: dict[str, Any] = Field(default_factory=dict)
    active: bool = True
    usage_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    last_used: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def record_use(self, succeeded: bool) -> "Integration":
        """Bump counters after an execution, successful or not."""
        now = datetime.now(UTC)
        self.usage_count += 1
        if succeeded:
            self.success_count += 1
        else:
            self.error_count += 1
        self.last_used = now
        self.updated_at = now
        return self


class IntegrationCreate(BaseModel):
    """Fields accepted when registering an integration."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    type: IntegrationType
    config: dict[str, Any] = Field(default_factory=dict)
    active: bool = True


class IntegrationUpdate(BaseModel):
    """Partial update for an integration."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    config: dict[str, Any] | None = None
    active: bool | None = None


class IntegrationTemplate(BaseModel):
    """Read-only catalog entry for a supported integration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    description: str
    type: IntegrationType
    config_schema: dict[str, Any]
    default_config: dict[str, Any] = Field(default_factory=dict)
    supported_events: list[str] = Field(default_factory=list)
    documentation: str
    category: TemplateCategory = "other"


__all__ = [
    "CHAT_TYPES",
    "ChatIntegrationConfig",
    "EmailIntegrationConfig",
    "Integration",
    "IntegrationCreate",
    "IntegrationTemplate",
    "IntegrationType",
    "IntegrationUpdate",
    "TemplateCategory",
    "WebhookIntegrationConfig",
]
