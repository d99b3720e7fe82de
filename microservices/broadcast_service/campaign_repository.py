"""
Broadcast Campaign Repository

Data access layer for campaigns - PostgreSQL (asyncpg)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.postgres_client import PostgresClientWrapper
from .models import AudienceSelector, Campaign, CampaignStatus, NotificationCategory

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class CampaignRepository:
    """Campaign storage - PostgreSQL (Async)"""

    def __init__(self, db: Optional[PostgresClientWrapper] = None):
        self.db = db or PostgresClientWrapper(service_name="broadcast_service")
        self.schema = "broadcast"
        self.campaigns_table = "campaigns"

    async def initialize(self):
        """Initialize database connection"""
        await self.db.initialize()
        logger.info("Campaign repository initialized with PostgreSQL")

    async def ensure_schema(self) -> int:
        """Apply the bundled migration scripts (idempotent DDL), returns the number applied"""
        scripts = sorted(MIGRATIONS_DIR.glob("*.sql"))
        for script in scripts:
            await self.db.execute_script(script.read_text(encoding="utf-8"))
            logger.info(f"Applied migration {script.name}")
        return len(scripts)

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Campaign repository database connection closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        return await self.db.health_check()

    # ====================
    # Campaign CRUD
    # ====================

    async def save_campaign(self, campaign: Campaign) -> Campaign:
        """Insert a campaign; created_at is assigned by the database"""
        try:
            query = f'''
                INSERT INTO {self.schema}.{self.campaigns_table} (
                    campaign_id, title, body, category, audience,
                    created_by, metadata, status
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
            '''
            params = [
                campaign.campaign_id,
                campaign.title,
                campaign.body,
                campaign.category.value,
                campaign.audience.model_dump(mode="json"),
                campaign.created_by,
                campaign.metadata,
                campaign.status.value,
            ]

            async with self.db:
                result = await self.db.query_row(query, params=params)

            return self._row_to_campaign(result)

        except Exception as e:
            logger.error(f"Error saving campaign {campaign.campaign_id}: {e}")
            raise

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID"""
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.campaigns_table}
                WHERE campaign_id = $1
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[campaign_id])

            return self._row_to_campaign(result) if result else None

        except Exception as e:
            logger.error(f"Error getting campaign {campaign_id}: {e}")
            raise

    async def list_campaigns(
        self, include_retired: bool = False, limit: int = 50, offset: int = 0
    ) -> List[Campaign]:
        """List campaigns, newest first"""
        try:
            where = "" if include_retired else "WHERE status = 'active'"
            query = f'''
                SELECT * FROM {self.schema}.{self.campaigns_table}
                {where}
                ORDER BY created_at DESC
                LIMIT $1 OFFSET $2
            '''

            async with self.db:
                results = await self.db.query(query, params=[limit, offset])

            return [self._row_to_campaign(row) for row in results]

        except Exception as e:
            logger.error(f"Error listing campaigns: {e}")
            raise

    async def retire_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Mark a campaign retired; already-retired campaigns keep their retired_at"""
        try:
            query = f'''
                UPDATE {self.schema}.{self.campaigns_table}
                SET status = 'retired',
                    retired_at = COALESCE(retired_at, now())
                WHERE campaign_id = $1
                RETURNING *
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[campaign_id])

            return self._row_to_campaign(result) if result else None

        except Exception as e:
            logger.error(f"Error retiring campaign {campaign_id}: {e}")
            raise

    # ====================
    # Row Mapping
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> Campaign:
        """Convert database row to Campaign model"""
        audience = row.get("audience") or {}
        if isinstance(audience, str):
            audience = json.loads(audience)

        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return Campaign(
            campaign_id=row["campaign_id"],
            title=row["title"],
            body=row["body"],
            category=NotificationCategory(row["category"]),
            audience=AudienceSelector.model_validate(audience),
            created_by=row["created_by"],
            metadata=metadata,
            status=CampaignStatus(row["status"]),
            created_at=row.get("created_at"),
            retired_at=row.get("retired_at"),
        )
