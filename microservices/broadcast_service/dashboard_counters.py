"""
Dashboard Counters

Headline numbers for the admin dashboard. Campaigns are counted with the
same grouping key as the admin feed, so total_campaigns always equals the
feed's group count before capping.
"""

import logging
from typing import Iterable, Optional

from .admin_aggregator import LEGACY_KEY_LENGTH, grouping_key
from .live_feed import ChangeFeed, ErrorCallback, Subscription, UpdateCallback
from .models import DashboardCounters, DeliveryRecord
from .protocols import DeliveryRepositoryProtocol

logger = logging.getLogger(__name__)


def count_deliveries(
    records: Iterable[DeliveryRecord], key_length: int = LEGACY_KEY_LENGTH
) -> DashboardCounters:
    """Count campaigns, live deliveries and unread deliveries over non-deleted records"""
    keys = set()
    live = 0
    unread = 0
    for record in records:
        if record.deleted:
            continue
        keys.add(grouping_key(record, key_length))
        live += 1
        if not record.read:
            unread += 1
    return DashboardCounters(total_campaigns=len(keys), live_deliveries=live, unread_deliveries=unread)


class DashboardCounterService:
    """Live dashboard counters"""

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        change_feed: ChangeFeed,
        key_length: int = LEGACY_KEY_LENGTH,
    ):
        self.repository = repository
        self.change_feed = change_feed
        self.key_length = key_length

    async def snapshot(self) -> DashboardCounters:
        return await self.repository.count_active(self.key_length)

    def subscribe(
        self,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self.change_feed.subscribe(
            name="admin:dashboard",
            loader=self.snapshot,
            on_update=on_update,
            on_error=on_error,
        )
