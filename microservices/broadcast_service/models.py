"""
Broadcast Service Data Models

Campaigns, per-recipient delivery records, audience selectors and the
projections (inbox, admin summaries, dashboard counters) built from them.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# ====================
# Enums
# ====================

class NotificationCategory(str, Enum):
    """Broadcast category shown to recipients"""
    CRITICAL = "critical"
    URGENT = "urgent"
    INFO = "info"
    SUCCESS = "success"
    GENERAL = "general"
    REMINDER = "reminder"
    EVENT = "event"


class CampaignStatus(str, Enum):
    """Campaign lifecycle status"""
    ACTIVE = "active"
    RETIRED = "retired"


class DeliveryState(str, Enum):
    """Delivery record state (active -> deleted only)"""
    ACTIVE = "active"
    DELETED = "deleted"


class DeletedBy(str, Enum):
    """Who tombstoned a delivery record"""
    RECIPIENT = "recipient"
    ADMIN_CASCADE = "admin_cascade"


class AudienceKind(str, Enum):
    """Audience selector kinds"""
    ALL = "all"
    SEGMENT = "segment"
    EXPLICIT = "explicit"


class ChangeKind(str, Enum):
    """Kinds of delivery changes pushed to live subscriptions"""
    CREATED = "created"
    READ = "read"
    UNREAD = "unread"
    DELETED = "deleted"
    CASCADE_DELETED = "cascade_deleted"


# ====================
# Audience
# ====================

class AudienceSelector(BaseModel):
    """
    Who a campaign targets.

    ``all`` targets every user, ``segment`` users holding ``role`` and
    ``explicit`` the listed recipient ids.
    """
    model_config = ConfigDict(frozen=True)

    kind: AudienceKind = AudienceKind.ALL
    role: Optional[str] = Field(None, description="Role for segment selectors (donor, recipient, ...)")
    recipient_ids: Tuple[str, ...] = Field(default_factory=tuple, description="Recipients for explicit selectors")

    @model_validator(mode="after")
    def _check_kind(self) -> "AudienceSelector":
        if self.kind == AudienceKind.SEGMENT and not (self.role and self.role.strip()):
            raise ValueError("segment selector requires a role")
        if self.kind != AudienceKind.SEGMENT and self.role is not None:
            raise ValueError(f"{self.kind.value} selector does not take a role")
        if self.kind != AudienceKind.EXPLICIT and self.recipient_ids:
            raise ValueError(f"{self.kind.value} selector does not take recipient_ids")
        return self

    @classmethod
    def all_users(cls) -> "AudienceSelector":
        return cls(kind=AudienceKind.ALL)

    @classmethod
    def segment(cls, role: str) -> "AudienceSelector":
        return cls(kind=AudienceKind.SEGMENT, role=role)

    @classmethod
    def explicit(cls, recipient_ids) -> "AudienceSelector":
        return cls(kind=AudienceKind.EXPLICIT, recipient_ids=tuple(recipient_ids))

    def describe(self) -> str:
        if self.kind == AudienceKind.SEGMENT:
            return f"segment:{self.role}"
        if self.kind == AudienceKind.EXPLICIT:
            return f"explicit:{len(self.recipient_ids)}"
        return "all"


@dataclass(frozen=True)
class ResolvedAudience:
    """Recipient ids computed once for a selector"""
    recipient_ids: Tuple[str, ...]
    selector: AudienceSelector
    warning: Optional[Warning] = None

    def __len__(self) -> int:
        return len(self.recipient_ids)

    @property
    def is_empty(self) -> bool:
        return not self.recipient_ids


# ====================
# Core Models
# ====================

class Campaign(BaseModel):
    """A single admin broadcast. Content never changes after creation."""
    model_config = ConfigDict(frozen=True)

    campaign_id: str = Field(..., description="Campaign ID")
    title: str
    body: str
    category: NotificationCategory = NotificationCategory.GENERAL
    audience: AudienceSelector = Field(default_factory=AudienceSelector.all_users)
    created_by: str = Field(..., description="Actor who broadcast the campaign")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    status: CampaignStatus = CampaignStatus.ACTIVE
    created_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None


def make_delivery_id(campaign_id: str, recipient_id: str) -> str:
    """Deterministic delivery id for a (campaign, recipient) pair"""
    digest = hashlib.sha256(f"{campaign_id}:{recipient_id}".encode("utf-8")).hexdigest()
    return f"dlv_{digest[:24]}"


class DeliveryRecord(BaseModel):
    """One recipient's copy of a campaign"""
    model_config = ConfigDict(frozen=True)

    delivery_id: str
    campaign_id: Optional[str] = Field(None, description="None only for legacy records")
    recipient_id: str

    # Denormalized at fan-out
    title: str
    body: str
    category: NotificationCategory = NotificationCategory.GENERAL
    sent_by: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    read: bool = False
    state: DeliveryState = DeliveryState.ACTIVE
    deleted_by: Optional[DeletedBy] = None

    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @computed_field
    @property
    def deleted(self) -> bool:
        return self.state == DeliveryState.DELETED

    @classmethod
    def for_campaign(cls, campaign: Campaign, recipient_id: str) -> "DeliveryRecord":
        """Build the unread, active record fan-out writes for a recipient"""
        return cls(
            delivery_id=make_delivery_id(campaign.campaign_id, recipient_id),
            campaign_id=campaign.campaign_id,
            recipient_id=recipient_id,
            title=campaign.title,
            body=campaign.body,
            category=campaign.category,
            sent_by=campaign.created_by,
            metadata=dict(campaign.metadata),
        )


class BroadcastContext(BaseModel):
    """Proof that an actor was authorized to broadcast"""
    model_config = ConfigDict(frozen=True)

    actor_id: str
    roles: Tuple[str, ...] = Field(default_factory=tuple)
    authorized_at: datetime

    BROADCAST_ROLES: ClassVar[Tuple[str, ...]] = ("admin",)

    @property
    def can_broadcast(self) -> bool:
        return any(role in self.BROADCAST_ROLES for role in self.roles)


# ====================
# Fan-out
# ====================

class FanoutFailure(BaseModel):
    """A recipient whose record could not be written"""
    recipient_id: str
    error: str


class FanoutReport(BaseModel):
    """Outcome of writing one campaign's delivery records"""
    campaign_id: str
    requested: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: List[FanoutFailure] = Field(default_factory=list)
    # Recipients whose record was written by this run, in request order
    delivered_recipient_ids: List[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def failed_recipient_ids(self) -> List[str]:
        return [failure.recipient_id for failure in self.failed]

    def raise_for_failures(self) -> None:
        """Raise PartialFanoutError if any recipient failed"""
        if self.failed:
            from .protocols import PartialFanoutError
            raise PartialFanoutError(self)


@dataclass
class BroadcastResult:
    """Campaign plus fan-out outcome and any non-fatal warnings"""
    campaign: Campaign
    report: FanoutReport
    warnings: List[Warning] = field(default_factory=list)


# ====================
# Change Feed
# ====================

class DeliveryChange(BaseModel):
    """
    A change to delivery records.

    ``recipient_ids`` lists the affected owners; ``None`` means the change
    may touch any recipient (admin cascade).
    """
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    campaign_id: Optional[str] = None
    recipient_ids: Optional[Tuple[str, ...]] = None

    def affects(self, recipient_id: str) -> bool:
        return self.recipient_ids is None or recipient_id in self.recipient_ids


# ====================
# Projections
# ====================

class AdminNotificationSummary(BaseModel):
    """Per-campaign aggregate shown on the admin feed"""
    grouping_key: str
    campaign_id: Optional[str] = None
    title: str
    body: str
    category: NotificationCategory
    sent_by: str
    sent_date: Optional[datetime] = None
    total_sent: int = 0
    read_count: int = 0


class DashboardCounters(BaseModel):
    """Headline numbers for the admin dashboard"""
    total_campaigns: int = 0
    live_deliveries: int = 0
    unread_deliveries: int = 0


# ====================
# Request/Response Models
# ====================

class BroadcastRequest(BaseModel):
    """Request to broadcast a campaign"""
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=4000)
    category: NotificationCategory = NotificationCategory.GENERAL
    audience: AudienceSelector = Field(default_factory=AudienceSelector.all_users)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FanoutRequest(BaseModel):
    """Request to (re)run fan-out for an existing campaign"""
    recipient_ids: List[str] = Field(..., min_length=1)


class BroadcastResponse(BaseModel):
    """Broadcast result as returned over HTTP"""
    campaign: Campaign
    report: FanoutReport
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: BroadcastResult) -> "BroadcastResponse":
        return cls(
            campaign=result.campaign,
            report=result.report,
            warnings=[str(warning) for warning in result.warnings],
        )


class CampaignListResponse(BaseModel):
    campaigns: List[Campaign]
    total: int


class CascadeDeleteResponse(BaseModel):
    campaign_id: str
    deleted_count: int


class AdminFeedResponse(BaseModel):
    summaries: List[AdminNotificationSummary]


class InboxResponse(BaseModel):
    recipient_id: str
    deliveries: List[DeliveryRecord]
    unread_count: int


class UnreadCountResponse(BaseModel):
    recipient_id: str
    unread_count: int


class MutationResponse(BaseModel):
    """Single-record mutation; changed is False for a repeated call"""
    delivery_id: str
    changed: bool


class BulkMutationResponse(BaseModel):
    recipient_id: str
    count: int


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)
