"""
Recipient Inbox

Per-recipient projection of delivery records plus the owner-only mutations
(read, unread, soft delete, read-all, clear-all). All mutations are
idempotent: repeating one is a no-op that reports no change.
"""

import logging
from typing import List, Optional

from .live_feed import ChangeFeed, ErrorCallback, Subscription, UpdateCallback
from .models import ChangeKind, DeletedBy, DeliveryChange, DeliveryRecord
from .protocols import DeliveryNotFoundError, DeliveryOwnershipError, DeliveryRepositoryProtocol

logger = logging.getLogger(__name__)


class RecipientInbox:
    """Live inbox for each recipient"""

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        change_feed: ChangeFeed,
        limit: int = 50,
    ):
        self.repository = repository
        self.change_feed = change_feed
        self.limit = limit

    # ====================
    # Projections
    # ====================

    async def snapshot(self, recipient_id: str) -> List[DeliveryRecord]:
        """Non-deleted records of the recipient, newest first, capped"""
        return await self.repository.list_inbox(recipient_id, self.limit)

    async def unread_count(self, recipient_id: str) -> int:
        return await self.repository.count_unread(recipient_id)

    def subscribe(
        self,
        recipient_id: str,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Push a fresh inbox snapshot whenever the recipient's records change"""
        return self.change_feed.subscribe(
            name=f"inbox:{recipient_id}",
            loader=lambda: self.snapshot(recipient_id),
            on_update=on_update,
            on_error=on_error,
            matches=lambda change: change.affects(recipient_id),
        )

    def subscribe_unread_count(
        self,
        recipient_id: str,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Push the recipient's unread count whenever their records change"""
        return self.change_feed.subscribe(
            name=f"unread:{recipient_id}",
            loader=lambda: self.unread_count(recipient_id),
            on_update=on_update,
            on_error=on_error,
            matches=lambda change: change.affects(recipient_id),
        )

    # ====================
    # Mutations
    # ====================

    async def mark_read(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        record = await self._get_owned(delivery_id, actor_id)
        changed = await self.repository.set_read(delivery_id, True)
        if changed:
            await self._notify(ChangeKind.READ, record)
        return changed

    async def mark_unread(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        record = await self._get_owned(delivery_id, actor_id)
        changed = await self.repository.set_read(delivery_id, False)
        if changed:
            await self._notify(ChangeKind.UNREAD, record)
        return changed

    async def soft_delete(self, delivery_id: str, actor_id: Optional[str] = None) -> bool:
        """Tombstone one record; deletion is terminal"""
        record = await self._get_owned(delivery_id, actor_id)
        changed = await self.repository.soft_delete(delivery_id, DeletedBy.RECIPIENT)
        if changed:
            logger.info(f"Delivery {delivery_id} deleted by recipient {record.recipient_id}")
            await self._notify(ChangeKind.DELETED, record)
        return changed

    async def mark_all_read(self, recipient_id: str) -> int:
        count = await self.repository.mark_all_read(recipient_id)
        if count:
            await self.change_feed.publish(
                DeliveryChange(kind=ChangeKind.READ, recipient_ids=(recipient_id,))
            )
        return count

    async def clear_all(self, recipient_id: str) -> int:
        count = await self.repository.clear_all(recipient_id)
        if count:
            logger.info(f"Cleared {count} deliveries for recipient {recipient_id}")
            await self.change_feed.publish(
                DeliveryChange(kind=ChangeKind.DELETED, recipient_ids=(recipient_id,))
            )
        return count

    # ====================
    # Helpers
    # ====================

    async def _get_owned(self, delivery_id: str, actor_id: Optional[str]) -> DeliveryRecord:
        record = await self.repository.get_delivery(delivery_id)
        if record is None:
            raise DeliveryNotFoundError(f"Delivery not found: {delivery_id}")
        if actor_id is not None and actor_id != record.recipient_id:
            raise DeliveryOwnershipError(
                f"Delivery {delivery_id} is not owned by {actor_id}",
                delivery_id=delivery_id,
                actor_id=actor_id,
            )
        return record

    async def _notify(self, kind: ChangeKind, record: DeliveryRecord) -> None:
        await self.change_feed.publish(
            DeliveryChange(
                kind=kind,
                campaign_id=record.campaign_id,
                recipient_ids=(record.recipient_id,),
            )
        )
