"""
Broadcast Service Business Logic

Facade over the broadcast engine: campaign creation, audience resolution,
fan-out, recipient inboxes, the admin feed and dashboard counters.

Admin operations take a BroadcastContext obtained once at the API boundary;
nothing here consults ambient session state.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Union

from core.config import BroadcastSettings
from .admin_aggregator import AdminAggregator
from .audience_resolver import AudienceResolver, dedupe_recipient_ids
from .dashboard_counters import DashboardCounterService
from .events.publishers import BroadcastEventPublishers
from .fanout_writer import FanoutWriter
from .live_feed import ChangeFeed, ErrorCallback, Subscription, UpdateCallback
from .models import (
    AdminNotificationSummary,
    AudienceSelector,
    BroadcastContext,
    BroadcastRequest,
    BroadcastResult,
    Campaign,
    CampaignStatus,
    ChangeKind,
    DashboardCounters,
    DeliveryChange,
    DeliveryRecord,
    FanoutReport,
    NotificationCategory,
)
from .protocols import (
    AuthorizationError,
    BroadcastValidationError,
    CampaignNotFoundError,
    CampaignRepositoryProtocol,
    DeliveryRepositoryProtocol,
    DirectoryClientProtocol,
    PushGatewayProtocol,
)
from .recipient_inbox import RecipientInbox

logger = logging.getLogger(__name__)


class BroadcastService:
    """Broadcast service business logic layer"""

    def __init__(
        self,
        campaign_repository: CampaignRepositoryProtocol,
        delivery_repository: DeliveryRepositoryProtocol,
        directory_client: DirectoryClientProtocol,
        change_feed: Optional[ChangeFeed] = None,
        event_publishers: Optional[BroadcastEventPublishers] = None,
        push_gateway: Optional[PushGatewayProtocol] = None,
        settings: Optional[BroadcastSettings] = None,
    ):
        self.settings = settings or BroadcastSettings()
        self.campaign_repository = campaign_repository
        self.delivery_repository = delivery_repository
        self.change_feed = change_feed or ChangeFeed()
        self.event_publishers = event_publishers
        self.push_gateway = push_gateway

        self.resolver = AudienceResolver(directory_client)
        self.writer = FanoutWriter(
            delivery_repository,
            change_feed=self.change_feed,
            concurrency=self.settings.fanout_concurrency,
        )
        self.inbox = RecipientInbox(
            delivery_repository,
            self.change_feed,
            limit=self.settings.inbox_limit,
        )
        self.aggregator = AdminAggregator(
            delivery_repository,
            self.change_feed,
            limit=self.settings.admin_feed_limit,
            key_length=self.settings.legacy_key_length,
        )
        self.dashboard = DashboardCounterService(
            delivery_repository,
            self.change_feed,
            key_length=self.settings.legacy_key_length,
        )

    # ====================
    # Authorization
    # ====================

    @staticmethod
    def _require_broadcaster(context: BroadcastContext) -> None:
        if not isinstance(context, BroadcastContext) or not context.can_broadcast:
            actor_id = getattr(context, "actor_id", None)
            raise AuthorizationError("Broadcast permission required", actor_id=actor_id)

    # ====================
    # Campaigns
    # ====================

    async def create_campaign(
        self,
        context: BroadcastContext,
        title: str,
        body: str,
        category: Union[NotificationCategory, str] = NotificationCategory.GENERAL,
        audience: Optional[AudienceSelector] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Campaign:
        """
        Create a campaign without fanning it out.

        Raises:
            AuthorizationError: context lacks broadcast permission
            BroadcastValidationError: empty title/body or unknown category
        """
        self._require_broadcaster(context)

        title = (title or "").strip()
        body = (body or "").strip()
        if not title:
            raise BroadcastValidationError("Title is required", field="title")
        if not body:
            raise BroadcastValidationError("Body is required", field="body")
        try:
            category = NotificationCategory(category)
        except ValueError:
            raise BroadcastValidationError(f"Unknown category: {category}", field="category")

        campaign = Campaign(
            campaign_id=f"cmp_{uuid.uuid4().hex[:16]}",
            title=title,
            body=body,
            category=category,
            audience=audience or AudienceSelector.all_users(),
            created_by=context.actor_id,
            metadata=dict(metadata or {}),
        )
        campaign = await self.campaign_repository.save_campaign(campaign)

        logger.info(
            f"Campaign created: {campaign.campaign_id} by {context.actor_id} "
            f"({campaign.category.value}, audience {campaign.audience.describe()})"
        )
        if self.event_publishers:
            await self.event_publishers.publish_campaign_created(campaign)
        return campaign

    async def get_campaign(self, campaign_id: str) -> Campaign:
        campaign = await self.campaign_repository.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    async def list_campaigns(
        self, include_retired: bool = False, limit: int = 50, offset: int = 0
    ) -> List[Campaign]:
        return await self.campaign_repository.list_campaigns(
            include_retired=include_retired, limit=limit, offset=offset
        )

    # ====================
    # Fan-out
    # ====================

    async def fan_out(self, campaign_id: str, recipient_ids: Iterable[str]) -> FanoutReport:
        """
        Write delivery records for an existing campaign.

        Safe to repeat: recipients already delivered to are skipped.
        Per-recipient failures are reported in the result, never raised.
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status == CampaignStatus.RETIRED:
            raise BroadcastValidationError(f"Campaign {campaign_id} is retired", field="campaign_id")

        recipients = dedupe_recipient_ids(recipient_ids)
        report = await self.writer.fan_out(campaign, recipients)

        if self.event_publishers:
            await self.event_publishers.publish_fanout_completed(report)

        if self.push_gateway and report.delivered_recipient_ids:
            await self.push_gateway.notify(list(report.delivered_recipient_ids), campaign)

        return report

    async def send_broadcast(self, context: BroadcastContext, request: BroadcastRequest) -> BroadcastResult:
        """
        Resolve the audience, create the campaign and fan it out.

        The audience is resolved before the campaign is stored, so a
        directory failure leaves nothing behind. An empty audience still
        creates the campaign and returns a ResolutionWarning.
        """
        self._require_broadcaster(context)

        resolved = await self.resolver.resolve(request.audience)

        campaign = await self.create_campaign(
            context,
            title=request.title,
            body=request.body,
            category=request.category,
            audience=request.audience,
            metadata=request.metadata,
        )
        report = await self.fan_out(campaign.campaign_id, resolved.recipient_ids)

        warnings = [resolved.warning] if resolved.warning else []
        return BroadcastResult(campaign=campaign, report=report, warnings=warnings)

    async def admin_cascade_delete(self, context: BroadcastContext, campaign_id: str) -> int:
        """
        Tombstone every delivery of a campaign and retire it.

        Returns:
            Number of records newly deleted (0 when repeated)
        """
        self._require_broadcaster(context)
        await self.get_campaign(campaign_id)

        deleted_count = await self.delivery_repository.cascade_delete(campaign_id)
        await self.campaign_repository.retire_campaign(campaign_id)

        if deleted_count:
            await self.change_feed.publish(
                DeliveryChange(kind=ChangeKind.CASCADE_DELETED, campaign_id=campaign_id)
            )

        logger.info(f"Campaign {campaign_id} cascade-deleted by {context.actor_id}: {deleted_count} deliveries")
        if self.event_publishers:
            await self.event_publishers.publish_campaign_retired(campaign_id, context.actor_id, deleted_count)
        return deleted_count

    # ====================
    # Recipient Inbox
    # ====================

    async def get_inbox(self, recipient_id: str) -> List[DeliveryRecord]:
        return await self.inbox.snapshot(recipient_id)

    async def get_unread_count(self, recipient_id: str) -> int:
        return await self.inbox.unread_count(recipient_id)

    def subscribe_inbox(
        self, recipient_id: str, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        return self.inbox.subscribe(recipient_id, on_update, on_error)

    def subscribe_unread_count(
        self, recipient_id: str, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        return self.inbox.subscribe_unread_count(recipient_id, on_update, on_error)

    async def mark_read(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        return await self.inbox.mark_read(delivery_id, actor_id)

    async def mark_unread(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        return await self.inbox.mark_unread(delivery_id, actor_id)

    async def mark_all_read(self, recipient_id: str) -> int:
        return await self.inbox.mark_all_read(recipient_id)

    async def soft_delete(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        return await self.inbox.soft_delete(delivery_id, actor_id)

    async def clear_all(self, recipient_id: str) -> int:
        return await self.inbox.clear_all(recipient_id)

    # ====================
    # Admin Feed & Dashboard
    # ====================

    async def get_admin_feed(self) -> List[AdminNotificationSummary]:
        return await self.aggregator.snapshot()

    async def get_dashboard(self) -> DashboardCounters:
        return await self.dashboard.snapshot()

    def subscribe_admin_feed(
        self, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        return self.aggregator.subscribe(on_update, on_error)

    def subscribe_dashboard(
        self, on_update: UpdateCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        return self.dashboard.subscribe(on_update, on_error)

    # ====================
    # Health
    # ====================

    async def health_check(self) -> Dict[str, Any]:
        """Check service health"""
        campaigns_ok = await self.campaign_repository.health_check()
        deliveries_ok = await self.delivery_repository.health_check()
        healthy = campaigns_ok and deliveries_ok
        return {
            "status": "healthy" if healthy else "degraded",
            "database": "connected" if healthy else "disconnected",
            "live_subscriptions": self.change_feed.subscription_count,
        }


__all__ = ["BroadcastService"]
