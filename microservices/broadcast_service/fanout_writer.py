"""
Fan-out Writer

Writes one delivery record per recipient of a campaign.

Writes run concurrently under a semaphore with no cross-record transaction.
A failed write is logged and reported; it never aborts the others and is
never retried here. Re-running fan-out for the same campaign is safe: the
(campaign_id, recipient_id) key is checked first and enforced again by the
store, so existing recipients are counted as skipped.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from .live_feed import ChangeFeed
from .models import Campaign, ChangeKind, DeliveryChange, DeliveryRecord, FanoutFailure, FanoutReport
from .protocols import DeliveryRepositoryProtocol

logger = logging.getLogger(__name__)


class FanoutWriter:
    """Writes delivery records for a campaign"""

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        change_feed: Optional[ChangeFeed] = None,
        concurrency: int = 50,
    ):
        self.repository = repository
        self.change_feed = change_feed
        self.concurrency = max(1, concurrency)

    async def fan_out(self, campaign: Campaign, recipient_ids: Iterable[str]) -> FanoutReport:
        """
        Write a record for each recipient.

        Args:
            campaign: The campaign being delivered
            recipient_ids: Resolved, deduplicated recipients

        Returns:
            FanoutReport with succeeded/skipped counts and per-recipient failures
        """
        recipients = list(dict.fromkeys(recipient_ids))
        report = FanoutReport(campaign_id=campaign.campaign_id, requested=len(recipients))
        if not recipients:
            return report

        already_delivered = await self.repository.get_delivered_recipient_ids(
            campaign.campaign_id, recipients
        )
        pending = [r for r in recipients if r not in already_delivered]
        report.skipped = len(already_delivered)

        semaphore = asyncio.Semaphore(self.concurrency)
        delivered: List[str] = []

        async def _write(recipient_id: str) -> None:
            async with semaphore:
                try:
                    record = DeliveryRecord.for_campaign(campaign, recipient_id)
                    inserted = await self.repository.insert_delivery(record)
                except Exception as e:
                    logger.warning(
                        f"Failed to write delivery for {recipient_id} "
                        f"(campaign {campaign.campaign_id}): {e}"
                    )
                    report.failed.append(FanoutFailure(recipient_id=recipient_id, error=str(e)))
                    return

                if inserted:
                    report.succeeded += 1
                    delivered.append(recipient_id)
                else:
                    report.skipped += 1

        await asyncio.gather(*(_write(recipient_id) for recipient_id in pending))
        written = set(delivered)
        report.delivered_recipient_ids = [r for r in pending if r in written]

        if delivered and self.change_feed is not None:
            await self.change_feed.publish(
                DeliveryChange(
                    kind=ChangeKind.CREATED,
                    campaign_id=campaign.campaign_id,
                    recipient_ids=tuple(report.delivered_recipient_ids),
                )
            )

        logger.info(
            f"Fan-out for campaign {campaign.campaign_id}: requested={report.requested} "
            f"succeeded={report.succeeded} skipped={report.skipped} failed={len(report.failed)}"
        )
        return report
