"""FastAPI router for hookrelay API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse

from hookrelay import __version__
from hookrelay.service import HookRelayService

from .auth import CurrentUser
from .rate_limit import RateLimitDependency, RateLimitInfo, add_rate_limit_headers
from .schemas import (
    ApiKeyListResponse,
    ApiKeyResponse,
    CreateApiKeyRequest,
    DeliveryListResponse,
    DeliveryResponse,
    EventAcceptedResponse,
    EventRequest,
    HealthResponse,
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeResponse,
    WebhookIdRequest,
    WebhookListResponse,
    WebhookResponse,
    WebhookTestResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_service(request: Request) -> HookRelayService:
    """Dependency to get the HookRelayService held on the app."""
    service: HookRelayService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return service


ServiceDep = Annotated[HookRelayService, Depends(get_service)]
ManagementRateLimit = Annotated[RateLimitInfo | None, Depends(RateLimitDependency("webhooks"))]
EventsRateLimit = Annotated[RateLimitInfo | None, Depends(RateLimitDependency("events"))]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check(request: Request) -> HealthResponse:
    """Liveness and storage connectivity."""
    service: HookRelayService | None = getattr(request.app.state, "service", None)
    if service is not None and service.storage.is_initialized:
        return HealthResponse(
            status="healthy",
            version=__version__,
            storage_connected=True,
            pending_deliveries=service.engine.scheduler.pending_count,
        )
    return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)


@router.post(
    "/webhooks/subscribe",
    response_model=SubscribeResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def subscribe(
    body: SubscribeRequest,
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: ManagementRateLimit,
) -> SubscribeResponse:
    """Register a webhook for one trigger type.

    The URL must be a public HTTPS endpoint. The signing secret is returned
    only in this response.
    """
    add_rate_limit_headers(response, rate_info)
    subscription = await service.registry.subscribe(
        user_id=user.user_id,
        api_key_id=body.api_key_id,
        trigger_type=body.trigger_type,
        url=body.webhook_url,
        secret=body.secret_token,
    )
    return SubscribeResponse.from_subscription(subscription)


@router.api_route(
    "/webhooks/list",
    methods=["GET", "POST"],
    response_model=WebhookListResponse,
    tags=["webhooks"],
)
async def list_webhooks(
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: ManagementRateLimit,
) -> WebhookListResponse:
    """List the caller's webhooks, newest first (secrets omitted)."""
    add_rate_limit_headers(response, rate_info)
    subscriptions = await service.registry.list(user.user_id)
    return WebhookListResponse(
        webhooks=[WebhookResponse.from_subscription(s) for s in subscriptions]
    )


@router.api_route(
    "/webhooks/unsubscribe",
    methods=["DELETE", "POST"],
    response_model=UnsubscribeResponse,
    tags=["webhooks"],
)
async def unsubscribe(
    body: WebhookIdRequest,
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: ManagementRateLimit,
) -> UnsubscribeResponse:
    """Remove one of the caller's webhooks. 404 if not found or not owned."""
    add_rate_limit_headers(response, rate_info)
    await service.registry.unsubscribe(body.webhook_id, user.user_id)
    return UnsubscribeResponse(webhook_id=body.webhook_id)


@router.post("/webhooks/test", response_model=WebhookTestResponse, tags=["webhooks"])
async def test_webhook(
    body: WebhookIdRequest,
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: ManagementRateLimit,
) -> WebhookTestResponse:
    """Send a single-attempt synthetic delivery.

    Returns immediately; the outcome appears in the delivery log.
    """
    add_rate_limit_headers(response, rate_info)
    subscription = await service.send_test(body.webhook_id, user.user_id)
    return WebhookTestResponse(webhook_id=subscription.id)


@router.get("/webhooks/health", tags=["webhooks"])
async def webhook_health(service: ServiceDep, user: CurrentUser) -> JSONResponse:
    """Delivery health of the caller's webhooks over the last 24 hours.

    Responds 503 when the report is unhealthy.
    """
    report = await service.webhook_health(user.user_id)
    return JSONResponse(
        status_code=report.http_status,
        content=report.model_dump(mode="json"),
    )


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def list_deliveries(
    webhook_id: str,
    service: ServiceDep,
    user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> DeliveryListResponse:
    """Recent delivery attempts of one webhook, newest first."""
    attempts = await service.deliveries(webhook_id, user.user_id, limit=limit)
    return DeliveryListResponse(
        webhook_id=webhook_id,
        deliveries=[DeliveryResponse.from_attempt(a) for a in attempts],
    )


@router.post(
    "/api-keys",
    response_model=ApiKeyResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["api-keys"],
)
async def create_api_key(
    body: CreateApiKeyRequest,
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: ManagementRateLimit,
) -> ApiKeyResponse:
    """Issue an API key. The raw key is shown only in this response."""
    add_rate_limit_headers(response, rate_info)
    api_key, raw_key = await service.create_api_key(user.user_id, body.key_name, body.scopes)
    return ApiKeyResponse.from_api_key(api_key, raw_key)


@router.get("/api-keys", response_model=ApiKeyListResponse, tags=["api-keys"])
async def list_api_keys(service: ServiceDep, user: CurrentUser) -> ApiKeyListResponse:
    """List the caller's API keys (hashes and raw keys never returned)."""
    api_keys = await service.list_api_keys(user.user_id)
    return ApiKeyListResponse(api_keys=[ApiKeyResponse.from_api_key(k) for k in api_keys])


@router.delete("/api-keys/{key_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["api-keys"])
async def revoke_api_key(key_id: str, service: ServiceDep, user: CurrentUser) -> Response:
    """Revoke one of the caller's API keys."""
    await service.revoke_api_key(key_id, user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/events",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def publish_event(
    body: EventRequest,
    service: ServiceDep,
    user: CurrentUser,
    response: Response,
    rate_info: EventsRateLimit,
) -> EventAcceptedResponse:
    """Enqueue a domain event for the caller's subscriptions.

    Returns once delivery chains are started.
    """
    add_rate_limit_headers(response, rate_info)
    started = await service.enqueue(body.trigger_type, body.data, user.user_id)
    return EventAcceptedResponse(
        trigger_type=body.trigger_type,
        webhooks_notified=len(started),
    )
