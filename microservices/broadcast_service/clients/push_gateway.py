"""
Push Gateway

OS-level push delivery (APNs/FCM) is not wired up. The gateway logs what it
would have sent so broadcasts behave the same once a real provider exists.
"""

import logging
from typing import List

from ..models import Campaign

logger = logging.getLogger(__name__)


class LoggingPushGateway:
    """Push gateway that records intent and never delivers"""

    async def notify(self, recipient_ids: List[str], campaign: Campaign) -> bool:
        logger.info(
            f"Push not implemented: campaign {campaign.campaign_id} "
            f"({campaign.category.value}) for {len(recipient_ids)} recipients"
        )
        return False
