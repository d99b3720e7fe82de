"""
Admin Aggregator

Groups live delivery records into one summary per campaign for the admin
feed. Counts reflect current reach: soft-deleted records drop out.

The store aggregates in place (DeliveryRepository.summarize_active mirrors
grouping_key in SQL); summarize() is the same projection over records in
memory, for stores that hold them as Python objects.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .live_feed import ChangeFeed, ErrorCallback, Subscription, UpdateCallback
from .models import AdminNotificationSummary, DeliveryRecord
from .protocols import DeliveryRepositoryProtocol

logger = logging.getLogger(__name__)

LEGACY_KEY_LENGTH = 64

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def grouping_key(record: DeliveryRecord, key_length: int = LEGACY_KEY_LENGTH) -> str:
    """
    Key identifying the campaign a record belongs to.

    Records without a campaign_id (legacy imports) fall back to their
    truncated title and body.
    """
    if record.campaign_id:
        return record.campaign_id
    return f"legacy:{record.title[:key_length]}|{record.body[:key_length]}"


def _sort_time(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def summarize(
    records: Iterable[DeliveryRecord],
    limit: Optional[int] = 50,
    key_length: int = LEGACY_KEY_LENGTH,
) -> List[AdminNotificationSummary]:
    """
    Build per-campaign summaries from delivery records.

    Deleted records are ignored. Each summary takes its content and sender
    from the group's most recent record. Sorted by sent_date descending.
    """
    latest: Dict[str, DeliveryRecord] = {}
    totals: Dict[str, int] = {}
    reads: Dict[str, int] = {}

    for record in records:
        if record.deleted:
            continue
        key = grouping_key(record, key_length)
        totals[key] = totals.get(key, 0) + 1
        if record.read:
            reads[key] = reads.get(key, 0) + 1
        current = latest.get(key)
        if current is None or _sort_time(record.created_at) > _sort_time(current.created_at):
            latest[key] = record

    summaries = [
        AdminNotificationSummary(
            grouping_key=key,
            campaign_id=record.campaign_id,
            title=record.title,
            body=record.body,
            category=record.category,
            sent_by=record.sent_by,
            sent_date=record.created_at,
            total_sent=totals[key],
            read_count=reads.get(key, 0),
        )
        for key, record in latest.items()
    ]
    summaries.sort(key=lambda s: (_sort_time(s.sent_date), s.grouping_key), reverse=True)

    if limit is not None:
        summaries = summaries[:limit]
    return summaries


class AdminAggregator:
    """Live admin feed of per-campaign sent/read counts"""

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        change_feed: ChangeFeed,
        limit: int = 50,
        key_length: int = LEGACY_KEY_LENGTH,
    ):
        self.repository = repository
        self.change_feed = change_feed
        self.limit = limit
        self.key_length = key_length

    async def snapshot(self) -> List[AdminNotificationSummary]:
        return await self.repository.summarize_active(self.limit, self.key_length)

    def subscribe(
        self,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Push the full admin feed whenever any delivery changes"""
        return self.change_feed.subscribe(
            name="admin:feed",
            loader=self.snapshot,
            on_update=on_update,
            on_error=on_error,
        )
