"""Built-in catalog of integration templates.

Templates are static: they describe what an integration of each kind
needs and which events it is meant for. They are not stored per tenant.
"""

from __future__ import annotations

from courier.exceptions import NotFoundError
from courier.models import IntegrationTemplate, IntegrationType

_NOTIFICATION_EVENTS = ["document.processed", "document.shared", "error.occurred"]


def _field(field_type: str, required: bool) -> dict[str, object]:
    return {"type": field_type, "required": required}


TEMPLATES: tuple[IntegrationTemplate, ...] = (
    IntegrationTemplate(
        id="slack",
        name="Slack",
        description="Send notifications to Slack channels",
        type=IntegrationType.SLACK,
        config_schema={
            "webhookUrl": _field("string", True),
            "channel": _field("string", False),
            "username": _field("string", False),
        },
        default_config={"username": "Courier Bot"},
        supported_events=_NOTIFICATION_EVENTS,
        documentation="https://api.slack.com/messaging/webhooks",
        category="communication",
    ),
    IntegrationTemplate(
        id="teams",
        name="Microsoft Teams",
        description="Send notifications to Microsoft Teams channels",
        type=IntegrationType.TEAMS,
        config_schema={"webhookUrl": _field("string", True)},
        supported_events=_NOTIFICATION_EVENTS,
        documentation=(
            "https://docs.microsoft.com/en-us/microsoftteams/platform/"
            "webhooks-and-connectors/how-to/add-incoming-webhook"
        ),
        category="communication",
    ),
    IntegrationTemplate(
        id="discord",
        name="Discord",
        description="Send notifications to Discord channels",
        type=IntegrationType.DISCORD,
        config_schema={
            "webhookUrl": _field("string", True),
            "username": _field("string", False),
            "avatarUrl": _field("string", False),
        },
        default_config={"username": "Courier"},
        supported_events=_NOTIFICATION_EVENTS,
        documentation="https://discord.com/developers/docs/resources/webhook",
        category="communication",
    ),
    IntegrationTemplate(
        id="zapier",
        name="Zapier",
        description="Connect to thousands of apps via Zapier",
        type=IntegrationType.WEBHOOK,
        config_schema={
            "url": _field("string", True),
            "headers": _field("object", False),
        },
        supported_events=["*"],
        documentation="https://zapier.com/apps/webhook/integrations",
        category="automation",
    ),
    IntegrationTemplate(
        id="email",
        name="Email Notifications",
        description="Send email notifications",
        type=IntegrationType.EMAIL,
        config_schema={
            "to": _field("array", True),
            "subject": _field("string", False),
            "template": _field("string", False),
        },
        default_config={"subject": "Courier Notification"},
        supported_events=_NOTIFICATION_EVENTS,
        documentation="Built-in email service",
        category="communication",
    ),
)

_BY_ID = {template.id: template for template in TEMPLATES}


def list_templates(category: str | None = None) -> list[IntegrationTemplate]:
    """Catalog entries, optionally restricted to one category."""
    if category is None:
        return list(TEMPLATES)
    return [t for t in TEMPLATES if t.category == category]


def get_template(template_id: str) -> IntegrationTemplate:
    """Look up a template by id.

    Raises:
        NotFoundError: If no template has that id.
    """
    try:
        return _BY_ID[template_id]
    except KeyError:
        raise NotFoundError("template", template_id) from None


__all__ = ["TEMPLATES", "get_template", "list_templates"]
