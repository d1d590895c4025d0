"""Manually invoked integrations (webhook, email, chat platforms)."""

from .executor import IntegrationExecutor
from .handlers import (
    ChatHandler,
    ChatSender,
    EmailHandler,
    EmailSender,
    HttpChatSender,
    IntegrationHandler,
    LoggingEmailSender,
    WebhookHandler,
    build_handlers,
)
from .templates import TEMPLATES, get_template, list_templates

__all__ = [
    "TEMPLATES",
    "ChatHandler",
    "ChatSender",
    "EmailHandler",
    "EmailSender",
    "HttpChatSender",
    "IntegrationExecutor",
    "IntegrationHandler",
    "LoggingEmailSender",
    "WebhookHandler",
    "build_handlers",
    "get_template",
    "list_templates",
]
