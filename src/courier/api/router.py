"""FastAPI router for Courier API endpoints."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from courier import __version__
from courier.models import (
    Delivery,
    DeliveryStatus,
    Integration,
    IntegrationCreate,
    IntegrationTemplate,
    IntegrationUpdate,
    SubscriptionCreate,
    SubscriptionUpdate,
)
from courier.service import MAX_PAGE_SIZE, EndpointTestResult, SignatureCheck, WebhookService

from .schemas import (
    DeliveryListResponse,
    EndpointTestRequest,
    ExecuteIntegrationRequest,
    ExecuteIntegrationResponse,
    HealthResponse,
    StatsResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    TriggerRequest,
    TriggerResponse,
    VerifyRequest,
)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health.

    Healthy once the service is initialized and the dispatcher worker
    is running.
    """
    running = _service is not None and _service.dispatcher.running
    return HealthResponse(
        status="healthy" if running else "unhealthy",
        version=__version__,
        dispatcher_running=running,
    )


# Subscriptions


@router.post(
    "/webhooks",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def register_webhook(request: SubscriptionCreate, service: ServiceDep) -> SubscriptionResponse:
    """Register a webhook endpoint."""
    subscription = await service.register_subscription(request)
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/webhooks", response_model=SubscriptionListResponse, tags=["webhooks"])
async def list_webhooks(
    service: ServiceDep,
    active_only: bool = False,
) -> SubscriptionListResponse:
    """List registered webhook endpoints, oldest first."""
    subscriptions = service.list_subscriptions(active_only=active_only)
    return SubscriptionListResponse(
        items=[SubscriptionResponse.from_subscription(s) for s in subscriptions],
        count=len(subscriptions),
    )


@router.get("/webhooks/{subscription_id}", response_model=SubscriptionResponse, tags=["webhooks"])
async def get_webhook(subscription_id: str, service: ServiceDep) -> SubscriptionResponse:
    """Get one webhook endpoint."""
    return SubscriptionResponse.from_subscription(service.get_subscription(subscription_id))


@router.patch(
    "/webhooks/{subscription_id}", response_model=SubscriptionResponse, tags=["webhooks"]
)
async def update_webhook(
    subscription_id: str,
    request: SubscriptionUpdate,
    service: ServiceDep,
) -> SubscriptionResponse:
    """Partially update a webhook endpoint. Only fields present in the body change."""
    subscription = await service.update_subscription(subscription_id, request)
    return SubscriptionResponse.from_subscription(subscription)


@router.delete(
    "/webhooks/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(subscription_id: str, service: ServiceDep) -> Response:
    """Delete a webhook endpoint and cancel its pending retries."""
    await service.delete_subscription(subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Events


@router.post(
    "/events",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def trigger_event(request: TriggerRequest, service: ServiceDep) -> TriggerResponse:
    """Queue an event for delivery to matching webhooks.

    Returns once the event is queued; delivery results are available
    under /deliveries.
    """
    event = await service.trigger(
        request.type,
        request.data,
        source=request.source,
        user_id=request.user_id,
        session_id=request.session_id,
        metadata=request.metadata,
    )
    return TriggerResponse(event_id=event.id, type=event.type)


# Deliveries


@router.get("/deliveries", response_model=DeliveryListResponse, tags=["deliveries"])
async def list_deliveries(
    service: ServiceDep,
    webhook_id: str | None = None,
    status_filter: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeliveryListResponse:
    """List deliveries newest first, filtered by webhook and status."""
    page = service.list_deliveries(
        subscription_id=webhook_id, status=status_filter, limit=limit, offset=offset
    )
    return DeliveryListResponse.from_page(page)


@router.get("/deliveries/{delivery_id}", response_model=Delivery, tags=["deliveries"])
async def get_delivery(delivery_id: str, service: ServiceDep) -> Delivery:
    """Get one delivery with its latest attempt details."""
    return service.get_delivery(delivery_id)


@router.post("/deliveries/{delivery_id}/retry", response_model=Delivery, tags=["deliveries"])
async def retry_delivery(delivery_id: str, service: ServiceDep) -> Delivery:
    """Re-attempt a delivery now. Rejected with 409 if it already succeeded."""
    return await service.retry_delivery(delivery_id)


@router.delete(
    "/deliveries/{delivery_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["deliveries"],
)
async def delete_delivery(delivery_id: str, service: ServiceDep) -> Response:
    """Delete a delivery record and cancel its pending retry."""
    await service.delete_delivery(delivery_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Integrations


@router.get("/templates", response_model=list[IntegrationTemplate], tags=["integrations"])
async def list_templates(
    service: ServiceDep,
    category: str | None = None,
) -> list[IntegrationTemplate]:
    """List the integration template catalog."""
    return service.list_templates(category)


@router.get(
    "/templates/{template_id}", response_model=IntegrationTemplate, tags=["integrations"]
)
async def get_template(template_id: str, service: ServiceDep) -> IntegrationTemplate:
    return service.get_template(template_id)


@router.post(
    "/integrations",
    response_model=Integration,
    status_code=status.HTTP_201_CREATED,
    tags=["integrations"],
)
async def create_integration(request: IntegrationCreate, service: ServiceDep) -> Integration:
    """Register an integration. Its config is validated for the type."""
    return await service.create_integration(request)


@router.get("/integrations", response_model=list[Integration], tags=["integrations"])
async def list_integrations(service: ServiceDep) -> list[Integration]:
    return service.list_integrations()


@router.get(
    "/integrations/{integration_id}", response_model=Integration, tags=["integrations"]
)
async def get_integration(integration_id: str, service: ServiceDep) -> Integration:
    return service.get_integration(integration_id)


@router.patch(
    "/integrations/{integration_id}", response_model=Integration, tags=["integrations"]
)
async def update_integration(
    integration_id: str,
    request: IntegrationUpdate,
    service: ServiceDep,
) -> Integration:
    return await service.update_integration(integration_id, request)


@router.delete(
    "/integrations/{integration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["integrations"],
)
async def delete_integration(integration_id: str, service: ServiceDep) -> Response:
    await service.delete_integration(integration_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/integrations/{integration_id}/execute",
    response_model=ExecuteIntegrationResponse,
    tags=["integrations"],
)
async def execute_integration(
    integration_id: str,
    request: ExecuteIntegrationRequest,
    service: ServiceDep,
) -> ExecuteIntegrationResponse:
    """Run an integration once. Failures return 502 after usage is recorded."""
    result = await service.execute_integration(integration_id, request.data)
    return ExecuteIntegrationResponse(integration_id=integration_id, result=result)


# Tools


@router.get("/stats", response_model=StatsResponse, tags=["system"])
async def get_stats(service: ServiceDep) -> StatsResponse:
    """Delivery counters, success and failure rates, average response time."""
    return StatsResponse.from_stats(
        service.get_stats(),
        queue_size=service.dispatcher.queue_size,
        dropped_events=service.dispatcher.dropped_events,
    )


@router.post("/test", response_model=EndpointTestResult, tags=["tools"])
async def test_endpoint(request: EndpointTestRequest, service: ServiceDep) -> EndpointTestResult:
    """Send a one-off probe to a URL without creating a delivery."""
    return await service.test_endpoint(request.url, request.payload)


@router.post("/verify", response_model=SignatureCheck, tags=["tools"])
async def verify_signature(request: VerifyRequest, service: ServiceDep) -> SignatureCheck:
    """Verify an X-Signature value against a payload and secret."""
    payload: Any = request.payload
    if not isinstance(payload, str):
        payload = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return service.verify_signature(payload, request.signature, request.secret)


__all__ = ["get_service", "router", "set_service"]
