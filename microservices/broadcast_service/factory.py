"""
Broadcast Service Factory

Factory for creating broadcast service instances with proper dependency injection.
"""

import logging
import uuid
from typing import Optional

from core.config import BroadcastSettings
from core.config_manager import ConfigManager
from core.nats_client import NATSEventBus
from core.postgres_client import PostgresClientWrapper

from .broadcast_service import BroadcastService
from .campaign_repository import CampaignRepository
from .clients.authorization_client import AuthorizationClient
from .clients.directory_client import DirectoryClient
from .clients.push_gateway import LoggingPushGateway
from .delivery_repository import DeliveryRepository
from .events.handlers import BroadcastEventHandler
from .events.publishers import BroadcastEventPublishers
from .live_feed import ChangeFeed

logger = logging.getLogger(__name__)

SERVICE_NAME = "broadcast_service"


class BroadcastServiceFactory:
    """Factory for creating broadcast service components"""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        settings: Optional[BroadcastSettings] = None,
    ):
        self.config = config or ConfigManager(SERVICE_NAME)
        self.settings = settings or BroadcastSettings.from_env()
        self.instance_id = f"{SERVICE_NAME}-{uuid.uuid4().hex[:8]}"
        self._db: Optional[PostgresClientWrapper] = None
        self._campaign_repository: Optional[CampaignRepository] = None
        self._delivery_repository: Optional[DeliveryRepository] = None
        self._change_feed: Optional[ChangeFeed] = None
        self._nats_client: Optional[NATSEventBus] = None
        self._event_handler: Optional[BroadcastEventHandler] = None
        self._event_publishers: Optional[BroadcastEventPublishers] = None
        self._directory_client: Optional[DirectoryClient] = None
        self._authorization_client: Optional[AuthorizationClient] = None
        self._service: Optional[BroadcastService] = None

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info(f"Initializing Broadcast Service components ({self.instance_id})...")

        # Repositories share one connection pool
        self._db = PostgresClientWrapper(service_name=SERVICE_NAME)
        self._campaign_repository = CampaignRepository(self._db)
        self._delivery_repository = DeliveryRepository(self._db)
        await self._db.initialize()
        if self.settings.auto_migrate:
            await self._campaign_repository.ensure_schema()

        self._change_feed = ChangeFeed()

        # Initialize NATS client
        if self.settings.nats_enabled:
            try:
                self._nats_client = NATSEventBus(service_name=SERVICE_NAME, config=self.config)
                await self._nats_client.connect()
                logger.info("NATS client connected")
            except Exception as e:
                logger.warning(f"NATS client initialization failed: {e}")
                self._nats_client = None

        if self._nats_client:
            self._event_publishers = BroadcastEventPublishers(self._nats_client, self.instance_id)
            self._change_feed.add_forwarder(self._event_publishers.publish_delivery_changed)

            self._event_handler = BroadcastEventHandler(self._change_feed, self.instance_id)
            for pattern, handler in self._event_handler.get_event_handlers().items():
                await self._nats_client.subscribe_to_events(pattern, handler)

        # Initialize service clients
        self._directory_client = DirectoryClient(self.config)
        self._authorization_client = AuthorizationClient(self.config)

        # Initialize main service
        self._service = BroadcastService(
            campaign_repository=self._campaign_repository,
            delivery_repository=self._delivery_repository,
            directory_client=self._directory_client,
            change_feed=self._change_feed,
            event_publishers=self._event_publishers,
            push_gateway=LoggingPushGateway(),
            settings=self.settings,
        )

        logger.info("Broadcast Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Broadcast Service components...")

        if self._change_feed:
            await self._change_feed.close()

        if self._nats_client:
            await self._nats_client.close()

        if self._directory_client:
            await self._directory_client.close()

        if self._authorization_client:
            await self._authorization_client.close()

        if self._db:
            await self._db.close()

        logger.info("Broadcast Service components closed")

    @property
    def service(self) -> BroadcastService:
        """Get broadcast service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service

    @property
    def authorization_client(self) -> AuthorizationClient:
        """Get authorization client"""
        if not self._authorization_client:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._authorization_client

    @property
    def nats_client(self) -> Optional[NATSEventBus]:
        """Get NATS client"""
        return self._nats_client


__all__ = [
    "BroadcastServiceFactory",
]
