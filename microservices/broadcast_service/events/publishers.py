"""
Event Publishers for Broadcast Service

Centralized event publishing logic for broadcast_service.
Publishing failures are logged and swallowed: an event bus outage never
fails a broadcast.
"""

import logging
from datetime import datetime, timezone

from core.nats_client import Event, EventType, ServiceSource
from ..models import Campaign, DeliveryChange, FanoutReport
from .models import (
    CampaignCreatedEventData,
    CampaignRetiredEventData,
    DeliveryChangedEventData,
    FanoutCompletedEventData,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BroadcastEventPublishers:
    """Publishers for broadcast service events"""

    def __init__(self, event_bus, instance_id: str):
        """
        Initialize event publishers

        Args:
            event_bus: NATS event bus instance
            instance_id: Id of this service instance, stamped on delivery changes
        """
        self.event_bus = event_bus
        self.instance_id = instance_id

    async def _publish(self, event_type: EventType, data: dict, subject: str = None) -> bool:
        if not self.event_bus:
            logger.debug(f"Event bus not available, skipping {event_type.value} event")
            return False

        try:
            event = Event(
                event_type=event_type,
                source=ServiceSource.BROADCAST_SERVICE,
                data=data,
                subject=subject,
            )
            return bool(await self.event_bus.publish_event(event))
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value} event: {e}")
            return False

    async def publish_campaign_created(self, campaign: Campaign) -> bool:
        """Publish broadcast.campaign.created event"""
        event_data = CampaignCreatedEventData(
            campaign_id=campaign.campaign_id,
            title=campaign.title,
            category=campaign.category.value,
            audience=campaign.audience.model_dump(mode="json"),
            created_by=campaign.created_by,
            timestamp=_now(),
        )
        published = await self._publish(
            EventType.BROADCAST_CAMPAIGN_CREATED, event_data.model_dump(), subject=campaign.campaign_id
        )
        if published:
            logger.info(f"Published broadcast.campaign.created event for {campaign.campaign_id}")
        return published

    async def publish_fanout_completed(self, report: FanoutReport) -> bool:
        """Publish broadcast.fanout.completed event"""
        event_data = FanoutCompletedEventData(
            campaign_id=report.campaign_id,
            requested=report.requested,
            succeeded=report.succeeded,
            skipped=report.skipped,
            failed=len(report.failed),
            failed_recipient_ids=report.failed_recipient_ids,
            timestamp=_now(),
        )
        return await self._publish(
            EventType.BROADCAST_FANOUT_COMPLETED, event_data.model_dump(), subject=report.campaign_id
        )

    async def publish_campaign_retired(self, campaign_id: str, retired_by: str, deleted_count: int) -> bool:
        """Publish broadcast.campaign.retired event"""
        event_data = CampaignRetiredEventData(
            campaign_id=campaign_id,
            retired_by=retired_by,
            deleted_count=deleted_count,
            timestamp=_now(),
        )
        return await self._publish(
            EventType.BROADCAST_CAMPAIGN_RETIRED, event_data.model_dump(), subject=campaign_id
        )

    async def publish_delivery_changed(self, change: DeliveryChange) -> bool:
        """Mirror a local delivery change to peer instances"""
        event_data = DeliveryChangedEventData(
            kind=change.kind.value,
            campaign_id=change.campaign_id,
            recipient_ids=list(change.recipient_ids) if change.recipient_ids is not None else None,
            origin=self.instance_id,
        )
        return await self._publish(EventType.BROADCAST_DELIVERY_CHANGED, event_data.model_dump())
