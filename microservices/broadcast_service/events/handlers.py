"""
Event Handlers for Broadcast Service

Feeds delivery changes made on peer instances into the local change feed,
so live subscriptions served here refresh too.
"""

import logging
from typing import Awaitable, Callable, Dict, Set

from core.nats_client import Event, EventType
from ..live_feed import ChangeFeed
from ..models import ChangeKind, DeliveryChange
from .models import DeliveryChangedEventData

logger = logging.getLogger(__name__)


class BroadcastEventHandler:
    """Event handlers for broadcast service"""

    def __init__(self, change_feed: ChangeFeed, instance_id: str):
        self.change_feed = change_feed
        self.instance_id = instance_id
        # Track processed event IDs for idempotency
        self.processed_event_ids: Set[str] = set()

    def is_event_processed(self, event_id: str) -> bool:
        return event_id in self.processed_event_ids

    def mark_event_processed(self, event_id: str):
        self.processed_event_ids.add(event_id)
        # Limit in-memory cache size
        if len(self.processed_event_ids) > 10000:
            self.processed_event_ids = set(list(self.processed_event_ids)[5000:])

    async def handle_delivery_changed(self, event: Event) -> bool:
        """
        Handle broadcast.delivery.changed event

        Returns:
            True when the change was applied to the local feed
        """
        if event.id and self.is_event_processed(event.id):
            logger.debug(f"Event {event.id} already processed, skipping")
            return False

        try:
            data = DeliveryChangedEventData.model_validate(event.data)
            change = DeliveryChange(
                kind=ChangeKind(data.kind),
                campaign_id=data.campaign_id,
                recipient_ids=tuple(data.recipient_ids) if data.recipient_ids is not None else None,
            )
        except ValueError as e:
            logger.warning(f"Invalid broadcast.delivery.changed event {event.id}: {e}")
            return False

        if data.origin == self.instance_id:
            return False

        await self.change_feed.publish(change, forward=False)

        if event.id:
            self.mark_event_processed(event.id)
        logger.debug(f"Applied peer delivery change {data.kind} from {data.origin}")
        return True

    def get_event_handlers(self) -> Dict[str, Callable[[Event], Awaitable[bool]]]:
        """Subject pattern -> handler"""
        return {
            EventType.BROADCAST_DELIVERY_CHANGED.value: self.handle_delivery_changed,
        }
