"""
Directory Client

HTTP client for the account service, used to answer "who exists" and
"who holds role X" when resolving broadcast audiences.

Unlike lookup helpers that degrade to None, directory failures propagate:
a partial audience must never be treated as a complete one.
"""

import httpx
import logging
from typing import Any, Dict, List, Optional
from core.config_manager import ConfigManager

logger = logging.getLogger(__name__)


class DirectoryClient:
    """Client for account_service listing endpoints"""

    PAGE_SIZE = 100
    MAX_PAGES = 1000

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize directory client

        Args:
            config_manager: ConfigManager instance for service discovery
            http_client: Optional preconfigured httpx client
        """
        self.config_manager = config_manager or ConfigManager("broadcast_service")

        self.base_url = self._get_service_url("account_service", "http://localhost:8202")

        self.client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=30.0,
            headers={
                "Content-Type": "application/json",
                "X-Service-Name": "broadcast_service"
            }
        )

        logger.info(f"DirectoryClient initialized with base_url: {self.base_url}")

    def _get_service_url(self, service_name: str, fallback_url: str) -> str:
        """Get service URL from environment or use fallback"""
        url = self.config_manager.get_service_endpoint(service_name)
        if url:
            return url

        logger.info(f"Using fallback URL for {service_name}: {fallback_url}")
        return fallback_url

    async def _list_user_ids(self, params: Dict[str, Any]) -> List[str]:
        """Walk every page of /api/v1/accounts collecting user ids"""
        user_ids: List[str] = []
        page = 1

        while page <= self.MAX_PAGES:
            response = await self.client.get(
                "/api/v1/accounts",
                params={**params, "page": page, "page_size": self.PAGE_SIZE},
            )
            response.raise_for_status()
            body = response.json()

            for account in body.get("accounts", []):
                user_id = account.get("user_id")
                if user_id:
                    user_ids.append(user_id)

            if not body.get("has_next"):
                break
            page += 1

        return user_ids

    async def list_all_user_ids(self) -> List[str]:
        """Every active user id"""
        user_ids = await self._list_user_ids({"is_active": True})
        logger.debug(f"Directory returned {len(user_ids)} users")
        return user_ids

    async def list_user_ids_by_role(self, role: str) -> List[str]:
        """Active user ids holding a role (donor, recipient, admin, ...)"""
        user_ids = await self._list_user_ids({"is_active": True, "role": role})
        logger.debug(f"Directory returned {len(user_ids)} users with role {role}")
        return user_ids

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
