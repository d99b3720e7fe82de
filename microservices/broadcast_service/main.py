"""
Broadcast Service Main Application

FastAPI application for admin broadcasts, recipient inboxes and the live
admin feed.
Port: 8260
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from core.auth_dependencies import (
    is_internal_service_request,
    require_auth_or_internal_service,
    resolve_caller,
)
from core.config import BroadcastSettings
from core.config_manager import ConfigManager
from core.logger import setup_service_logger

from .broadcast_service import BroadcastService
from .factory import BroadcastServiceFactory
from .live_feed import Subscription
from .models import (
    AdminFeedResponse,
    BroadcastContext,
    BroadcastRequest,
    BroadcastResponse,
    BulkMutationResponse,
    Campaign,
    CampaignListResponse,
    CascadeDeleteResponse,
    DashboardCounters,
    FanoutReport,
    FanoutRequest,
    HealthResponse,
    InboxResponse,
    MutationResponse,
    UnreadCountResponse,
)
from .protocols import (
    AudienceResolutionError,
    AuthorizationClientProtocol,
    AuthorizationError,
    BroadcastServiceError,
    BroadcastValidationError,
    CampaignNotFoundError,
    DeliveryNotFoundError,
    DeliveryOwnershipError,
)
from .routes_registry import SERVICE_METADATA, get_routes_summary

# Service configuration
SERVICE_NAME = "broadcast_service"
SERVICE_PORT = int(os.getenv("SERVICE_PORT", "8260"))
SERVICE_VERSION = "1.0.0"

logger = setup_service_logger(SERVICE_NAME)

# Global factory instance
factory: Optional[BroadcastServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    config = ConfigManager(SERVICE_NAME)
    factory = BroadcastServiceFactory(config, BroadcastSettings.from_env())
    await factory.initialize()
    logger.info(f"Service config: {config.get_service_config()}")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()
    factory = None


# Create FastAPI application
app = FastAPI(
    title="Broadcast Service",
    description="Admin broadcasts fanned out to per-recipient inboxes with a live admin feed",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), **extra})


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return _error(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(DeliveryOwnershipError)
async def ownership_error_handler(request: Request, exc: DeliveryOwnershipError):
    return _error(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(AudienceResolutionError)
async def audience_resolution_handler(request: Request, exc: AudienceResolutionError):
    return _error(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(CampaignNotFoundError)
async def campaign_not_found_handler(request: Request, exc: CampaignNotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(DeliveryNotFoundError)
async def delivery_not_found_handler(request: Request, exc: DeliveryNotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(BroadcastValidationError)
async def validation_error_handler(request: Request, exc: BroadcastValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, field=exc.field)


@app.exception_handler(BroadcastServiceError)
async def broadcast_error_handler(request: Request, exc: BroadcastServiceError):
    return _error(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


# ====================
# Dependencies
# ====================


def get_service() -> BroadcastService:
    """Get broadcast service from factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory.service


def get_authorization_client() -> AuthorizationClientProtocol:
    """Get authorization client from factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory.authorization_client


def get_actor_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity from the X-User-Id header"""
    return x_user_id or None


async def get_broadcast_context(
    actor_id: Optional[str] = Depends(get_actor_id),
    auth_client: AuthorizationClientProtocol = Depends(get_authorization_client),
) -> BroadcastContext:
    """Authorize the caller once and hand the capability to the route"""
    if not actor_id:
        raise AuthorizationError("Missing X-User-Id header")
    return await auth_client.authorize_broadcaster(actor_id)


def _acting_user(caller: str) -> Optional[str]:
    """Owner to enforce for a caller; internal services act without one"""
    return None if is_internal_service_request(caller) else caller


def _check_owner(recipient_id: str, caller: str) -> None:
    actor_id = _acting_user(caller)
    if actor_id is not None and actor_id != recipient_id:
        raise DeliveryOwnershipError(
            f"{actor_id} may not access the inbox of {recipient_id}", actor_id=actor_id
        )


# ====================
# Health Endpoints
# ====================


@app.get("/api/v1/broadcasts/health", include_in_schema=False)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    dependencies = {}

    if factory:
        try:
            health = await factory.service.health_check()
            dependencies["postgres"] = "healthy" if health["database"] == "connected" else "unhealthy"
        except Exception:
            dependencies["postgres"] = "unhealthy"

        if factory.nats_client:
            dependencies["nats"] = "healthy" if factory.nats_client.is_connected else "unhealthy"
        else:
            dependencies["nats"] = "not_configured"

    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


@app.get("/api/v1/broadcasts/info", tags=["Health"])
async def service_info():
    """Service metadata and route table"""
    return {**SERVICE_METADATA, **get_routes_summary()}


# ====================
# Broadcast Endpoints (admin)
# ====================


@app.post(
    "/api/v1/broadcasts",
    response_model=BroadcastResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Broadcasts"],
)
async def send_broadcast(
    request: BroadcastRequest,
    context: BroadcastContext = Depends(get_broadcast_context),
    service: BroadcastService = Depends(get_service),
):
    """Create a campaign and fan it out to the resolved audience"""
    result = await service.send_broadcast(context, request)
    return BroadcastResponse.from_result(result)


@app.get("/api/v1/broadcasts", response_model=CampaignListResponse, tags=["Broadcasts"])
async def list_campaigns(
    include_retired: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: BroadcastService = Depends(get_service),
):
    campaigns = await service.list_campaigns(include_retired=include_retired, limit=limit, offset=offset)
    return CampaignListResponse(campaigns=campaigns, total=len(campaigns))


@app.get("/api/v1/broadcasts/admin/feed", response_model=AdminFeedResponse, tags=["Admin"])
async def admin_feed(
    context: BroadcastContext = Depends(get_broadcast_context),
    service: BroadcastService = Depends(get_service),
):
    """Per-campaign sent/read summaries"""
    return AdminFeedResponse(summaries=await service.get_admin_feed())


@app.get("/api/v1/broadcasts/admin/dashboard", response_model=DashboardCounters, tags=["Admin"])
async def admin_dashboard(
    context: BroadcastContext = Depends(get_broadcast_context),
    service: BroadcastService = Depends(get_service),
):
    return await service.get_dashboard()


@app.get("/api/v1/broadcasts/{campaign_id}", response_model=Campaign, tags=["Broadcasts"])
async def get_campaign(campaign_id: str, service: BroadcastService = Depends(get_service)):
    return await service.get_campaign(campaign_id)


@app.post("/api/v1/broadcasts/{campaign_id}/fanout", response_model=FanoutReport, tags=["Broadcasts"])
async def fan_out(
    campaign_id: str,
    request: FanoutRequest,
    context: BroadcastContext = Depends(get_broadcast_context),
    service: BroadcastService = Depends(get_service),
):
    """Write deliveries for extra or previously failed recipients"""
    return await service.fan_out(campaign_id, request.recipient_ids)


@app.delete("/api/v1/broadcasts/{campaign_id}", response_model=CascadeDeleteResponse, tags=["Broadcasts"])
async def cascade_delete(
    campaign_id: str,
    context: BroadcastContext = Depends(get_broadcast_context),
    service: BroadcastService = Depends(get_service),
):
    """Soft-delete every delivery of a campaign and retire it"""
    deleted_count = await service.admin_cascade_delete(context, campaign_id)
    return CascadeDeleteResponse(campaign_id=campaign_id, deleted_count=deleted_count)


# ====================
# Inbox Endpoints
# ====================


@app.get("/api/v1/inbox/{recipient_id}", response_model=InboxResponse, tags=["Inbox"])
async def get_inbox(
    recipient_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    _check_owner(recipient_id, caller)
    deliveries = await service.get_inbox(recipient_id)
    unread = await service.get_unread_count(recipient_id)
    return InboxResponse(recipient_id=recipient_id, deliveries=deliveries, unread_count=unread)


@app.get("/api/v1/inbox/{recipient_id}/unread-count", response_model=UnreadCountResponse, tags=["Inbox"])
async def get_unread_count(
    recipient_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    _check_owner(recipient_id, caller)
    return UnreadCountResponse(recipient_id=recipient_id, unread_count=await service.get_unread_count(recipient_id))


@app.post("/api/v1/inbox/{recipient_id}/read-all", response_model=BulkMutationResponse, tags=["Inbox"])
async def mark_all_read(
    recipient_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    _check_owner(recipient_id, caller)
    return BulkMutationResponse(recipient_id=recipient_id, count=await service.mark_all_read(recipient_id))


@app.post("/api/v1/inbox/{recipient_id}/clear", response_model=BulkMutationResponse, tags=["Inbox"])
async def clear_all(
    recipient_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    _check_owner(recipient_id, caller)
    return BulkMutationResponse(recipient_id=recipient_id, count=await service.clear_all(recipient_id))


@app.post("/api/v1/inbox/deliveries/{delivery_id}/read", response_model=MutationResponse, tags=["Inbox"])
async def mark_read(
    delivery_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    changed = await service.mark_read(delivery_id, actor_id=_acting_user(caller))
    return MutationResponse(delivery_id=delivery_id, changed=changed)


@app.post("/api/v1/inbox/deliveries/{delivery_id}/unread", response_model=MutationResponse, tags=["Inbox"])
async def mark_unread(
    delivery_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    changed = await service.mark_unread(delivery_id, actor_id=_acting_user(caller))
    return MutationResponse(delivery_id=delivery_id, changed=changed)


@app.delete("/api/v1/inbox/deliveries/{delivery_id}", response_model=MutationResponse, tags=["Inbox"])
async def soft_delete(
    delivery_id: str,
    caller: str = Depends(require_auth_or_internal_service),
    service: BroadcastService = Depends(get_service),
):
    changed = await service.soft_delete(delivery_id, actor_id=_acting_user(caller))
    return MutationResponse(delivery_id=delivery_id, changed=changed)


# ====================
# Live Subscriptions (WebSocket)
# ====================


async def _drain(websocket: WebSocket) -> None:
    """Consume client frames until the client disconnects"""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _stream(
    websocket: WebSocket,
    subscribe: Callable[[Callable[[Any], Awaitable[None]], Callable[[Exception], Awaitable[None]]], Subscription],
) -> None:
    """
    Push every snapshot of a subscription to a websocket.

    Frames are {"type": "snapshot", "data": ...} or, once, {"type": "error"}
    after which the socket is closed with 1011.
    """
    failed = asyncio.Event()

    async def on_update(snapshot: Any) -> None:
        await websocket.send_json({"type": "snapshot", "data": jsonable_encoder(snapshot)})

    async def on_error(error: Exception) -> None:
        await websocket.send_json({"type": "error", "detail": str(error)})
        failed.set()

    subscription = subscribe(on_update, on_error)
    receiver = asyncio.create_task(_drain(websocket))
    waiter = asyncio.create_task(failed.wait())
    try:
        done, pending = await asyncio.wait({receiver, waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if waiter in done:
            await websocket.close(code=1011)
    except Exception as e:
        logger.error(f"WebSocket error on {websocket.url.path}: {e}")
    finally:
        subscription()


async def _authorize_socket(
    websocket: WebSocket, auth_client: AuthorizationClientProtocol
) -> Optional[BroadcastContext]:
    actor_id = websocket.headers.get("x-user-id") or websocket.query_params.get("user_id")
    try:
        if not actor_id:
            raise AuthorizationError("Missing X-User-Id header")
        return await auth_client.authorize_broadcaster(actor_id)
    except AuthorizationError as e:
        await websocket.send_json({"type": "error", "detail": str(e)})
        await websocket.close(code=4403)
        return None


@app.websocket("/ws/inbox/{recipient_id}")
async def inbox_stream(
    websocket: WebSocket,
    recipient_id: str,
    service: BroadcastService = Depends(get_service),
):
    """Live inbox snapshots for one recipient"""
    await websocket.accept()
    caller = resolve_caller(
        websocket.headers.get("x-user-id") or websocket.query_params.get("user_id"),
        websocket.headers.get("x-internal-service"),
        websocket.headers.get("x-internal-service-secret"),
    )
    if not caller:
        await websocket.send_json({"type": "error", "detail": "User authentication required"})
        await websocket.close(code=4401)
        return
    try:
        _check_owner(recipient_id, caller)
    except DeliveryOwnershipError as e:
        await websocket.send_json({"type": "error", "detail": str(e)})
        await websocket.close(code=4403)
        return
    await _stream(websocket, lambda on_update, on_error: service.subscribe_inbox(recipient_id, on_update, on_error))


@app.websocket("/ws/admin/feed")
async def admin_feed_stream(
    websocket: WebSocket,
    service: BroadcastService = Depends(get_service),
    auth_client: AuthorizationClientProtocol = Depends(get_authorization_client),
):
    """Live admin feed"""
    await websocket.accept()
    if await _authorize_socket(websocket, auth_client) is None:
        return
    await _stream(websocket, service.subscribe_admin_feed)


@app.websocket("/ws/admin/dashboard")
async def admin_dashboard_stream(
    websocket: WebSocket,
    service: BroadcastService = Depends(get_service),
    auth_client: AuthorizationClientProtocol = Depends(get_authorization_client),
):
    """Live dashboard counters"""
    await websocket.accept()
    if await _authorize_socket(websocket, auth_client) is None:
        return
    await _stream(websocket, service.subscribe_dashboard)


# ====================
# Main Entry Point
# ====================


def main():
    """Run the service"""
    import uvicorn

    uvicorn.run(
        "microservices.broadcast_service.main:app",
        host="0.0.0.0",
        port=SERVICE_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
