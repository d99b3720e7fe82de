"""
Event Data Models for Broadcast Service

Defines Pydantic models for events published and consumed by broadcast_service
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


# ====================
# Outbound Event Models (Published by broadcast_service)
# ====================

class CampaignCreatedEventData(BaseModel):
    """Data for broadcast.campaign.created event"""
    campaign_id: str = Field(..., description="Campaign ID")
    title: str = Field(..., description="Campaign title")
    category: str = Field(..., description="Category: critical, urgent, info, ...")
    audience: Dict[str, Any] = Field(default_factory=dict, description="Audience selector")
    created_by: str = Field(..., description="Actor who broadcast the campaign")
    timestamp: str = Field(..., description="ISO timestamp of creation")


class FanoutCompletedEventData(BaseModel):
    """Data for broadcast.fanout.completed event"""
    campaign_id: str = Field(..., description="Campaign ID")
    requested: int = Field(..., description="Recipients requested")
    succeeded: int = Field(..., description="Records written")
    skipped: int = Field(..., description="Recipients already delivered to")
    failed: int = Field(..., description="Recipients whose write failed")
    failed_recipient_ids: List[str] = Field(default_factory=list)
    timestamp: str = Field(..., description="ISO timestamp of completion")


class CampaignRetiredEventData(BaseModel):
    """Data for broadcast.campaign.retired event"""
    campaign_id: str = Field(..., description="Campaign ID")
    retired_by: str = Field(..., description="Admin who cascade-deleted the campaign")
    deleted_count: int = Field(..., description="Records tombstoned by the cascade")
    timestamp: str = Field(..., description="ISO timestamp of retirement")


# ====================
# Inter-instance Event Models (Published and consumed by broadcast_service)
# ====================

class DeliveryChangedEventData(BaseModel):
    """Data for broadcast.delivery.changed event"""
    kind: str = Field(..., description="Change kind: created, read, unread, deleted, cascade_deleted")
    campaign_id: Optional[str] = None
    recipient_ids: Optional[List[str]] = Field(None, description="Affected owners; null means any")
    origin: str = Field(..., description="Instance id of the publisher")
