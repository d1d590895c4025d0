"""Single-attempt HTTP delivery of events to subscriber endpoints.

Builds the canonical JSON body, signs it with the subscription secret,
POSTs it and classifies the outcome. Never raises for delivery failures:
non-2xx responses, timeouts and connection errors all come back as an
unsuccessful DeliveryResult.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from courier.models import DeliveryResult

from .signing import compute_signature

if TYPE_CHECKING:
    from courier.models import Event, Subscription

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Courier-Webhook/1.0"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RESPONSE_BODY_LIMIT = 1000

HEADER_EVENT_TYPE = "X-Event-Type"
HEADER_DELIVERY_ID = "X-Delivery-Id"
HEADER_SIGNATURE = "X-Signature"


class DeliveryExecutor:
    """Performs one HTTP delivery attempt.

    Example:
        ```python
        executor = DeliveryExecutor(user_agent="Acme-Webhook/1.0")
        result = await executor.attempt(subscription, event, 1, delivery_id=delivery.id)
        if not result.success:
            print(result.error)
        ```
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        response_body_limit: int = DEFAULT_RESPONSE_BODY_LIMIT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            user_agent: User-Agent header for every request.
            timeout_seconds: Per-request timeout.
            response_body_limit: Bytes of response body kept on the result.
            client: Shared client to send through. A short-lived client is
                created per request when omitted.
        """
        self._user_agent = user_agent
        self._timeout = timeout_seconds
        self._body_limit = response_body_limit
        self._client = client

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def timeout(self) -> float:
        return self._timeout

    def build_headers(
        self,
        subscription: Subscription,
        event: Event,
        delivery_id: str,
        body: bytes,
    ) -> dict[str, str]:
        """Headers for a delivery: defaults, then custom headers, then signature."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            HEADER_EVENT_TYPE: event.type,
            HEADER_DELIVERY_ID: delivery_id,
            **subscription.headers,
        }
        if subscription.secret:
            headers[HEADER_SIGNATURE] = compute_signature(body, subscription.secret)
        return headers

    async def attempt(
        self,
        subscription: Subscription,
        event: Event,
        attempt_number: int,
        *,
        delivery_id: str,
        url: str | None = None,
    ) -> DeliveryResult:
        """Deliver ``event`` to the subscription once.

        Args:
            subscription: Subscription supplying headers and secret.
            event: Event to deliver.
            attempt_number: 1 for the first attempt, used for logging.
            delivery_id: Delivery record id, sent as X-Delivery-Id.
            url: Target URL; defaults to the subscription URL. Deliveries
                pass the URL captured at dispatch time.

        Returns:
            DeliveryResult describing the outcome.
        """
        target = url or str(subscription.url)
        body = event.to_json().encode("utf-8")
        headers = self.build_headers(subscription, event, delivery_id, body)

        result = await self.send(target, body, headers)

        if result.success:
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                event.type,
                target,
                result.status_code,
                attempt_number,
            )
        else:
            logger.warning(
                "Webhook delivery failed: %s to %s (attempt %d): %s",
                event.type,
                target,
                attempt_number,
                result.error,
            )
        return result

    async def send(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout: float | None = None,
    ) -> DeliveryResult:
        """POST ``body`` to ``url`` and classify the response.

        2xx is success; any other status, a timeout or a network error
        is a failure with a descriptive error string.
        """
        timeout = self._timeout if timeout is None else timeout
        started_at = datetime.now(UTC)
        start = time.perf_counter()

        try:
            response = await self._post(url, body, headers, timeout)
        except httpx.TimeoutException:
            return self._failure(start, started_at, f"Request timed out after {timeout:g}s")
        except httpx.RequestError as e:
            return self._failure(start, started_at, f"{type(e).__name__}: {e}".rstrip(": "))
        except Exception as e:
            logger.exception("Unexpected error delivering to %s", url)
            return self._failure(start, started_at, f"Unexpected error: {e}")

        duration_ms = (time.perf_counter() - start) * 1000
        response_body = self._truncate(response.content)
        if 200 <= response.status_code < 300:
            return DeliveryResult(
                success=True,
                status_code=response.status_code,
                response_body=response_body,
                duration_ms=duration_ms,
                started_at=started_at,
            )
        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            response_body=response_body,
            error=f"HTTP {response.status_code}: {response.reason_phrase}".rstrip(": "),
            duration_ms=duration_ms,
            started_at=started_at,
        )

    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
    ) -> DeliveryResult:
        """POST an arbitrary JSON payload (integrations and endpoint tests)."""
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
        merged = {
            "Content-Type": "application/json",
            "User-Agent": user_agent or self._user_agent,
            **(headers or {}),
        }
        return await self.send(url, body.encode("utf-8"), merged, timeout=timeout)

    async def _post(
        self, url: str, body: bytes, headers: dict[str, str], timeout: float
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, content=body, headers=headers, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, content=body, headers=headers)

    def _truncate(self, content: bytes) -> str | None:
        if not content:
            return None
        return content[: self._body_limit].decode("utf-8", errors="ignore")

    @staticmethod
    def _failure(start: float, started_at: datetime, error: str) -> DeliveryResult:
        return DeliveryResult(
            success=False,
            error=error,
            duration_ms=(time.perf_counter() - start) * 1000,
            started_at=started_at,
        )


__all__ = [
    "DEFAULT_USER_AGENT",
    "HEADER_DELIVERY_ID",
    "HEADER_EVENT_TYPE",
    "HEADER_SIGNATURE",
    "DeliveryExecutor",
]
