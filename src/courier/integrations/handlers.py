"""Per-type integration handlers.

Each integration type has one handler implementing ``execute(config,
data)``. Handlers raise on failure; the IntegrationExecutor does the
usage bookkeeping around them.
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import ConfigError, DeliveryError
from courier.models import (
    CHAT_TYPES,
    ChatIntegrationConfig,
    EmailIntegrationConfig,
    IntegrationType,
    WebhookIntegrationConfig,
)

if TYPE_CHECKING:
    from pydantic import BaseModel

    from courier.webhooks import DeliveryExecutor

logger = logging.getLogger(__name__)

DEFAULT_SLACK_USERNAME = "Courier Bot"
DEFAULT_DISCORD_USERNAME = "Courier"


def _parse_config(model: type[BaseModel], config: dict[str, Any]) -> Any:
    try:
        return model.model_validate(config)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigError(f"config.{location}" if location else "config", first["msg"]) from e


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _message_text(data: Any) -> str:
    """``data["message"]`` when present, otherwise the whole payload as JSON."""
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    if isinstance(data, str):
        return data
    return _compact_json(data)


@runtime_checkable
class IntegrationHandler(Protocol):
    """Protocol for integration handlers.

    All handlers must implement execute(), which performs the integration's
    action once and returns a JSON-friendly result.
    """

    @abstractmethod
    async def execute(self, config: dict[str, Any], data: Any) -> dict[str, Any]:
        """Run the integration once.

        Args:
            config: The integration's stored config.
            data: Caller-supplied payload.

        Returns:
            Type-specific result.

        Raises:
            ConfigError: If the config is unusable for this type.
            DeliveryError: If the outbound call failed.
        """
        ...


@runtime_checkable
class EmailSender(Protocol):
    """Outbound email transport."""

    async def send(self, to: list[str], subject: str, body: str) -> dict[str, Any]: ...


@runtime_checkable
class ChatSender(Protocol):
    """Outbound transport for chat-platform incoming webhooks."""

    async def post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]: ...


class LoggingEmailSender:
    """Email sender that logs the message instead of sending it.

    Used when no mail transport is configured.
    """

    async def send(self, to: list[str], subject: str, body: str) -> dict[str, Any]:
        logger.info("Email to %s: %s (%d chars)", ", ".join(to), subject, len(body))
        return {"status": "sent", "recipients": to, "subject": subject}


class HttpChatSender:
    """Posts chat payloads through the delivery executor's HTTP machinery."""

    def __init__(self, executor: DeliveryExecutor) -> None:
        self._executor = executor

    async def post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self._executor.post_json(url, payload)
        if not result.success:
            raise DeliveryError(result.error or "Chat delivery failed", result.status_code)
        return {"status": result.status_code, "data": result.response_body}


class WebhookHandler:
    """POSTs ``data`` to ``config.url`` once, without retries."""

    def __init__(self, executor: DeliveryExecutor) -> None:
        self._executor = executor

    async def execute(self, config: dict[str, Any], data: Any) -> dict[str, Any]:
        parsed: WebhookIntegrationConfig = _parse_config(WebhookIntegrationConfig, config)
        result = await self._executor.post_json(str(parsed.url), data, headers=parsed.headers)
        if not result.success:
            raise DeliveryError(result.error or "Webhook call failed", result.status_code)
        return {"status": result.status_code, "data": result.response_body}


class _Placeholders(dict[str, Any]):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class EmailHandler:
    """Renders the email body and hands it to an EmailSender."""

    def __init__(self, sender: EmailSender | None = None) -> None:
        self._sender = sender or LoggingEmailSender()

    @staticmethod
    def render(template: str | None, data: Any) -> str:
        """Fill ``{placeholders}`` from ``data``; unknown ones are left as-is.

        Without a template the body is the payload as indented JSON.
        """
        if template is None:
            return json.dumps(data, indent=2, ensure_ascii=False, default=str)
        values = _Placeholders(data if isinstance(data, dict) else {"data": data})
        return template.format_map(values)

    async def execute(self, config: dict[str, Any], data: Any) -> dict[str, Any]:
        parsed: EmailIntegrationConfig = _parse_config(EmailIntegrationConfig, config)
        try:
            body = self.render(parsed.template, data)
        except (ValueError, IndexError, AttributeError) as e:
            raise ConfigError("config.template", f"cannot render: {e}") from e
        return await self._sender.send([str(to) for to in parsed.to], parsed.subject, body)


class ChatHandler:
    """Formats ``data`` for one chat provider and posts it."""

    def __init__(self, provider: IntegrationType, sender: ChatSender) -> None:
        if provider not in CHAT_TYPES:
            raise ValueError(f"Not a chat integration type: {provider.value}")
        self.provider = provider
        self._sender = sender

    def build_payload(self, config: ChatIntegrationConfig, data: Any) -> dict[str, Any]:
        text = _message_text(data)
        if self.provider == IntegrationType.SLACK:
            payload: dict[str, Any] = {
                "text": text,
                "username": config.username or DEFAULT_SLACK_USERNAME,
            }
            if config.channel:
                payload["channel"] = config.channel
            return payload
        if self.provider == IntegrationType.DISCORD:
            payload = {
                "content": text,
                "username": config.username or DEFAULT_DISCORD_USERNAME,
            }
            if config.avatar_url:
                payload["avatar_url"] = str(config.avatar_url)
            return payload
        # Teams incoming webhooks accept a plain text card
        return {"text": text}

    async def execute(self, config: dict[str, Any], data: Any) -> dict[str, Any]:
        parsed: ChatIntegrationConfig = _parse_config(ChatIntegrationConfig, config)
        return await self._sender.post(str(parsed.webhook_url), self.build_payload(parsed, data))


def build_handlers(
    executor: DeliveryExecutor,
    email_sender: EmailSender | None = None,
    chat_sender: ChatSender | None = None,
) -> dict[IntegrationType, IntegrationHandler]:
    """Default handler for every executable integration type.

    ``database`` and ``file`` have no handler and fail at execution.
    """
    chat = chat_sender or HttpChatSender(executor)
    webhook = WebhookHandler(executor)
    handlers: dict[IntegrationType, IntegrationHandler] = {
        IntegrationType.WEBHOOK: webhook,
        IntegrationType.API: webhook,
        IntegrationType.EMAIL: EmailHandler(email_sender),
    }
    for chat_type in CHAT_TYPES:
        handlers[chat_type] = ChatHandler(chat_type, chat)
    return handlers


__all__ = [
    "ChatHandler",
    "ChatSender",
    "EmailHandler",
    "EmailSender",
    "HttpChatSender",
    "IntegrationHandler",
    "LoggingEmailSender",
    "WebhookHandler",
    "build_handlers",
]
