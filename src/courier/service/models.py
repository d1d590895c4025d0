"""Result models returned by WebhookService operations."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EndpointTestResult(BaseModel):
    """Outcome of a one-off probe against a candidate webhook URL.

    Attributes:
        url: URL that was probed.
        success: True iff the endpoint answered 2xx.
        status_code: HTTP status, if a response arrived.
        duration_ms: Round-trip time.
        response_body: Truncated response body.
        error: Failure description, if any.
    """

    model_config = ConfigDict(extra="forbid")

    url: str
    success: bool
    status_code: int | None = None
    duration_ms: float = Field(default=0.0, ge=0.0)
    response_body: str | None = None
    error: str | None = None


class SignatureCheck(BaseModel):
    """Result of verifying a payload signature."""

    valid: bool
    message: str


__all__ = ["EndpointTestResult", "SignatureCheck"]
