"""
Authorization Client

HTTP client for the authorization service. Turns "may this caller
broadcast" into a BroadcastContext capability, checked once at the API
boundary and threaded explicitly through the broadcast operations.
"""

import httpx
import logging
from datetime import datetime, timezone
from typing import Optional
from core.config_manager import ConfigManager

from ..models import BroadcastContext
from ..protocols import AuthorizationError

logger = logging.getLogger(__name__)


class AuthorizationClient:
    """Client for authorization_service access checks"""

    RESOURCE_TYPE = "broadcast"
    RESOURCE_ID = "campaigns"
    PERMISSION = "admin"

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config_manager = config_manager or ConfigManager("broadcast_service")
        self.base_url = (
            self.config_manager.get_service_endpoint("authorization_service")
            or "http://localhost:8204"
        )

        self.client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=10.0,
            headers={
                "Content-Type": "application/json",
                "X-Service-Name": "broadcast_service"
            }
        )

        logger.info(f"AuthorizationClient initialized with base_url: {self.base_url}")

    async def authorize_broadcaster(self, actor_id: str) -> BroadcastContext:
        """
        Check that an actor may broadcast.

        Args:
            actor_id: Calling user id

        Returns:
            BroadcastContext for the actor

        Raises:
            AuthorizationError: access denied, or the check could not be made
        """
        if not actor_id:
            raise AuthorizationError("Missing caller identity")

        try:
            response = await self.client.post(
                "/api/v1/authorization/check-access",
                json={
                    "user_id": actor_id,
                    "resource_type": self.RESOURCE_TYPE,
                    "resource_id": self.RESOURCE_ID,
                    "permission": self.PERMISSION,
                },
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Authorization check failed for {actor_id}: {e}")
            raise AuthorizationError(f"Authorization check unavailable for {actor_id}", actor_id=actor_id) from e

        if not result.get("has_access"):
            logger.warning(f"Broadcast denied for {actor_id}: {result.get('reason', 'no access')}")
            raise AuthorizationError(f"User {actor_id} may not broadcast", actor_id=actor_id)

        return BroadcastContext(
            actor_id=actor_id,
            roles=(self.PERMISSION,),
            authorized_at=datetime.now(timezone.utc),
        )

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
