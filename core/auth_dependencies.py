"""
FastAPI Authentication Dependencies for Microservices

Caller identity for routes that act on behalf of a user. The gateway
forwards the authenticated user as X-User-Id; trusted services calling
each other identify with X-Internal-Service + X-Internal-Service-Secret.
"""

import logging
import os
from typing import Optional

from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)

INTERNAL_SERVICE_SECRET = os.getenv(
    "INTERNAL_SERVICE_SECRET",
    "dev-internal-secret-change-in-production"
)

INTERNAL_SERVICE_USER = "internal-service"


def resolve_caller(
    user_id: Optional[str],
    internal_service: Optional[str] = None,
    internal_service_secret: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve a caller from raw header values.

    Returns:
        INTERNAL_SERVICE_USER for a valid internal call, the user id when
        one is present, otherwise None
    """
    if internal_service == "true" and internal_service_secret:
        if internal_service_secret == INTERNAL_SERVICE_SECRET:
            return INTERNAL_SERVICE_USER
        logger.warning("Invalid internal service secret")

    return user_id or None


async def require_auth_or_internal_service(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_internal_service: Optional[str] = Header(None, alias="X-Internal-Service"),
    x_internal_service_secret: Optional[str] = Header(None, alias="X-Internal-Service-Secret"),
) -> str:
    """
    Require either a user identity or internal service credentials.

    Usage:
        @app.post("/api/v1/inbox/{recipient_id}/clear")
        async def clear_all(caller: str = Depends(require_auth_or_internal_service)):
            if is_internal_service_request(caller):
                # trusted service, no ownership check
                ...

    Raises:
        HTTPException 401: no identity supplied
    """
    caller = resolve_caller(x_user_id, x_internal_service, x_internal_service_secret)
    if caller:
        if caller == INTERNAL_SERVICE_USER:
            logger.debug(f"Internal service request to {request.url.path}")
        return caller

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="User authentication required"
    )


def is_internal_service_request(caller: Optional[str]) -> bool:
    """Check whether a resolved caller is a trusted internal service"""
    return caller == INTERNAL_SERVICE_USER


__all__ = [
    "INTERNAL_SERVICE_SECRET",
    "INTERNAL_SERVICE_USER",
    "resolve_caller",
    "require_auth_or_internal_service",
    "is_internal_service_request",
]
