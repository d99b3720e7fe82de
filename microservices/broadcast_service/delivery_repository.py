"""
Broadcast Delivery Repository

Data access layer for per-recipient delivery records - PostgreSQL (asyncpg).
Records are never hard-deleted; deletion is a state change to 'deleted'.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from core.postgres_client import PostgresClientWrapper
from .models import (
    AdminNotificationSummary,
    DashboardCounters,
    DeletedBy,
    DeliveryRecord,
    DeliveryState,
    NotificationCategory,
)

logger = logging.getLogger(__name__)

# Same key as admin_aggregator.grouping_key; $1 is the legacy key length
GROUPING_KEY_SQL = (
    "COALESCE(NULLIF(campaign_id, ''), 'legacy:' || LEFT(title, $1) || '|' || LEFT(body, $1))"
)


class DeliveryRepository:
    """Delivery record storage - PostgreSQL (Async)"""

    def __init__(self, db: Optional[PostgresClientWrapper] = None):
        self.db = db or PostgresClientWrapper(service_name="broadcast_service")
        self.schema = "broadcast"
        self.deliveries_table = "deliveries"

    @property
    def _table(self) -> str:
        return f"{self.schema}.{self.deliveries_table}"

    async def initialize(self):
        """Initialize database connection"""
        await self.db.initialize()
        logger.info("Delivery repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Delivery repository database connection closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        return await self.db.health_check()

    # ====================
    # Fan-out Writes
    # ====================

    async def insert_delivery(self, record: DeliveryRecord) -> bool:
        """Insert a record; the unique (campaign_id, recipient_id) key rejects duplicates"""
        query = f'''
            INSERT INTO {self._table} (
                delivery_id, campaign_id, recipient_id, title, body,
                category, sent_by, metadata, read, state
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, false, 'active')
            ON CONFLICT (campaign_id, recipient_id) DO NOTHING
        '''
        params = [
            record.delivery_id,
            record.campaign_id,
            record.recipient_id,
            record.title,
            record.body,
            record.category.value,
            record.sent_by,
            record.metadata,
        ]

        async with self.db:
            inserted = await self.db.execute(query, params=params)

        return inserted > 0

    async def get_delivered_recipient_ids(
        self, campaign_id: str, recipient_ids: Iterable[str]
    ) -> Set[str]:
        """Recipients that already hold a record for this campaign"""
        try:
            query = f'''
                SELECT recipient_id FROM {self._table}
                WHERE campaign_id = $1 AND recipient_id = ANY($2::text[])
            '''

            async with self.db:
                results = await self.db.query(query, params=[campaign_id, list(recipient_ids)])

            return {row["recipient_id"] for row in results}

        except Exception as e:
            logger.error(f"Error checking existing deliveries for campaign {campaign_id}: {e}")
            raise

    # ====================
    # Reads
    # ====================

    async def get_delivery(self, delivery_id: str) -> Optional[DeliveryRecord]:
        """Get a record by id, deleted or not"""
        try:
            query = f"SELECT * FROM {self._table} WHERE delivery_id = $1"

            async with self.db:
                result = await self.db.query_row(query, params=[delivery_id])

            return self._row_to_delivery(result) if result else None

        except Exception as e:
            logger.error(f"Error getting delivery {delivery_id}: {e}")
            raise

    async def list_inbox(self, recipient_id: str, limit: int) -> List[DeliveryRecord]:
        """Active records of a recipient, newest first"""
        try:
            query = f'''
                SELECT * FROM {self._table}
                WHERE recipient_id = $1 AND state = 'active'
                ORDER BY created_at DESC
                LIMIT $2
            '''

            async with self.db:
                results = await self.db.query(query, params=[recipient_id, limit])

            return [self._row_to_delivery(row) for row in results]

        except Exception as e:
            logger.error(f"Error listing inbox for {recipient_id}: {e}")
            raise

    async def count_unread(self, recipient_id: str) -> int:
        """Active unread records of a recipient"""
        try:
            query = f'''
                SELECT COUNT(*) AS unread FROM {self._table}
                WHERE recipient_id = $1 AND state = 'active' AND read = false
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[recipient_id])

            return int(result["unread"]) if result else 0

        except Exception as e:
            logger.error(f"Error counting unread for {recipient_id}: {e}")
            raise

    # ====================
    # Admin Aggregates
    # ====================

    async def summarize_active(
        self, limit: Optional[int], key_length: int
    ) -> List[AdminNotificationSummary]:
        """Per-campaign totals over active records, newest group first"""
        try:
            query = f'''
                WITH keyed AS (
                    SELECT *, {GROUPING_KEY_SQL} AS grouping_key
                    FROM {self._table}
                    WHERE state = 'active'
                ),
                totals AS (
                    SELECT grouping_key,
                           COUNT(*) AS total_sent,
                           COUNT(*) FILTER (WHERE read) AS read_count
                    FROM keyed
                    GROUP BY grouping_key
                ),
                latest AS (
                    SELECT DISTINCT ON (grouping_key)
                           grouping_key, campaign_id, title, body, category, sent_by, created_at
                    FROM keyed
                    ORDER BY grouping_key, created_at DESC NULLS LAST
                )
                SELECT latest.*, totals.total_sent, totals.read_count
                FROM latest JOIN totals USING (grouping_key)
                ORDER BY latest.created_at DESC NULLS LAST, latest.grouping_key DESC
                LIMIT $2
            '''

            async with self.db:
                results = await self.db.query(query, params=[key_length, limit])

            return [self._row_to_summary(row) for row in results]

        except Exception as e:
            logger.error(f"Error summarizing active deliveries: {e}")
            raise

    async def count_active(self, key_length: int) -> DashboardCounters:
        """Distinct campaigns, live and unread records over active records"""
        try:
            query = f'''
                SELECT COUNT(DISTINCT {GROUPING_KEY_SQL}) AS total_campaigns,
                       COUNT(*) AS live_deliveries,
                       COUNT(*) FILTER (WHERE NOT read) AS unread_deliveries
                FROM {self._table}
                WHERE state = 'active'
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[key_length])

            if not result:
                return DashboardCounters()
            return DashboardCounters(
                total_campaigns=int(result["total_campaigns"] or 0),
                live_deliveries=int(result["live_deliveries"] or 0),
                unread_deliveries=int(result["unread_deliveries"] or 0),
            )

        except Exception as e:
            logger.error(f"Error counting active deliveries: {e}")
            raise

    # ====================
    # Recipient Mutations
    # ====================

    async def set_read(self, delivery_id: str, read: bool) -> bool:
        """Toggle read on an active record; False when already in that state"""
        query = f'''
            UPDATE {self._table}
            SET read = $2,
                read_at = CASE WHEN $2 THEN now() ELSE NULL END
            WHERE delivery_id = $1 AND state = 'active' AND read <> $2
        '''

        async with self.db:
            updated = await self.db.execute(query, params=[delivery_id, read])

        return updated > 0

    async def mark_all_read(self, recipient_id: str) -> int:
        query = f'''
            UPDATE {self._table}
            SET read = true, read_at = now()
            WHERE recipient_id = $1 AND state = 'active' AND read = false
        '''

        async with self.db:
            return await self.db.execute(query, params=[recipient_id])

    async def soft_delete(self, delivery_id: str, deleted_by: DeletedBy) -> bool:
        query = f'''
            UPDATE {self._table}
            SET state = 'deleted', deleted_by = $2, deleted_at = now()
            WHERE delivery_id = $1 AND state = 'active'
        '''

        async with self.db:
            updated = await self.db.execute(query, params=[delivery_id, deleted_by.value])

        return updated > 0

    async def clear_all(self, recipient_id: str) -> int:
        query = f'''
            UPDATE {self._table}
            SET state = 'deleted', deleted_by = $2, deleted_at = now()
            WHERE recipient_id = $1 AND state = 'active'
        '''

        async with self.db:
            return await self.db.execute(query, params=[recipient_id, DeletedBy.RECIPIENT.value])

    # ====================
    # Admin Mutations
    # ====================

    async def cascade_delete(self, campaign_id: str) -> int:
        query = f'''
            UPDATE {self._table}
            SET state = 'deleted', deleted_by = $2, deleted_at = now()
            WHERE campaign_id = $1 AND state = 'active'
        '''

        async with self.db:
            return await self.db.execute(query, params=[campaign_id, DeletedBy.ADMIN_CASCADE.value])

    # ====================
    # Row Mapping
    # ====================

    def _row_to_summary(self, row: Dict[str, Any]) -> AdminNotificationSummary:
        """Convert an aggregate row to AdminNotificationSummary"""
        return AdminNotificationSummary(
            grouping_key=row["grouping_key"],
            campaign_id=row.get("campaign_id") or None,
            title=row["title"],
            body=row["body"],
            category=NotificationCategory(row["category"]),
            sent_by=row["sent_by"],
            sent_date=row.get("created_at"),
            total_sent=int(row["total_sent"]),
            read_count=int(row["read_count"]),
        )

    def _row_to_delivery(self, row: Dict[str, Any]) -> DeliveryRecord:
        """Convert database row to DeliveryRecord model"""
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        deleted_by = row.get("deleted_by")

        return DeliveryRecord(
            delivery_id=row["delivery_id"],
            campaign_id=row.get("campaign_id"),
            recipient_id=row["recipient_id"],
            title=row["title"],
            body=row["body"],
            category=NotificationCategory(row["category"]),
            sent_by=row["sent_by"],
            metadata=metadata,
            read=bool(row.get("read")),
            state=DeliveryState(row["state"]),
            deleted_by=DeletedBy(deleted_by) if deleted_by else None,
            created_at=row.get("created_at"),
            read_at=row.get("read_at"),
            deleted_at=row.get("deleted_at"),
        )
