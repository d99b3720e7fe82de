"""
Broadcast Service Protocols

Defines interfaces for dependency injection and testing, plus the
service's exception taxonomy.
"""

from typing import Any, Iterable, List, Optional, Protocol, Set

from .models import (
    AdminNotificationSummary,
    AudienceSelector,
    BroadcastContext,
    Campaign,
    DashboardCounters,
    DeletedBy,
    DeliveryRecord,
    FanoutReport,
)


# ====================
# Repository Protocols
# ====================


class CampaignRepositoryProtocol(Protocol):
    """Protocol for campaign storage"""

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    async def save_campaign(self, campaign: Campaign) -> Campaign:
        """Persist a new campaign; returns it with server timestamps"""
        ...

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID"""
        ...

    async def list_campaigns(
        self, include_retired: bool = False, limit: int = 50, offset: int = 0
    ) -> List[Campaign]:
        """List campaigns, newest first"""
        ...

    async def retire_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Mark campaign retired; returns None if it does not exist"""
        ...


class DeliveryRepositoryProtocol(Protocol):
    """Protocol for delivery record storage"""

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def health_check(self) -> bool:
        ...

    async def insert_delivery(self, record: DeliveryRecord) -> bool:
        """Insert a record; False when (campaign_id, recipient_id) already exists"""
        ...

    async def get_delivered_recipient_ids(
        self, campaign_id: str, recipient_ids: Iterable[str]
    ) -> Set[str]:
        """Recipients among recipient_ids that already have a record for the campaign"""
        ...

    async def get_delivery(self, delivery_id: str) -> Optional[DeliveryRecord]:
        """Get a record by id, deleted or not"""
        ...

    async def list_inbox(self, recipient_id: str, limit: int) -> List[DeliveryRecord]:
        """Active records of a recipient, created_at descending"""
        ...

    async def count_unread(self, recipient_id: str) -> int:
        """Active unread records of a recipient"""
        ...

    async def summarize_active(
        self, limit: Optional[int], key_length: int
    ) -> List[AdminNotificationSummary]:
        """Per-campaign summaries over active records, grouped by grouping_key, newest first"""
        ...

    async def count_active(self, key_length: int) -> DashboardCounters:
        """Dashboard counters over active records, campaigns counted by grouping_key"""
        ...

    async def set_read(self, delivery_id: str, read: bool) -> bool:
        """Set read flag on an active record; False when nothing changed"""
        ...

    async def mark_all_read(self, recipient_id: str) -> int:
        """Mark every active unread record of a recipient read"""
        ...

    async def soft_delete(self, delivery_id: str, deleted_by: DeletedBy) -> bool:
        """Tombstone an active record; False when already deleted"""
        ...

    async def clear_all(self, recipient_id: str) -> int:
        """Tombstone every active record of a recipient"""
        ...

    async def cascade_delete(self, campaign_id: str) -> int:
        """Tombstone every active record of a campaign"""
        ...


# ====================
# Event Bus Protocol
# ====================


class EventBusProtocol(Protocol):
    """Protocol for event bus operations"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event to the event bus"""
        ...

    async def subscribe_to_events(
        self, pattern: str, handler: Any, durable: Optional[str] = None
    ) -> Optional[str]:
        """Subscribe to events matching a subject pattern"""
        ...

    async def close(self) -> None:
        """Close event bus connection"""
        ...


# ====================
# Service Client Protocols
# ====================


class DirectoryClientProtocol(Protocol):
    """Protocol for the user directory (account service)"""

    async def list_all_user_ids(self) -> List[str]:
        """Every known user id"""
        ...

    async def list_user_ids_by_role(self, role: str) -> List[str]:
        """User ids holding a role"""
        ...


class AuthorizationClientProtocol(Protocol):
    """Protocol for the authorization service"""

    async def authorize_broadcaster(self, actor_id: str) -> BroadcastContext:
        """Return a broadcast context or raise AuthorizationError"""
        ...


class PushGatewayProtocol(Protocol):
    """Protocol for OS-level push delivery"""

    async def notify(self, recipient_ids: List[str], campaign: Campaign) -> bool:
        """Push a campaign to devices; True when delivered"""
        ...


# ====================
# Custom Exceptions
# ====================


class BroadcastServiceError(Exception):
    """Base exception for broadcast service errors"""
    pass


class AuthorizationError(BroadcastServiceError):
    """Raised when a caller may not broadcast or cascade-delete"""

    def __init__(self, message: str, actor_id: Optional[str] = None):
        super().__init__(message)
        self.actor_id = actor_id


class AudienceResolutionError(BroadcastServiceError):
    """Raised when the directory cannot resolve an audience"""

    def __init__(self, message: str, selector: Optional[AudienceSelector] = None):
        super().__init__(message)
        self.selector = selector


class ResolutionWarning(UserWarning):
    """Audience resolved to zero recipients. Returned, never raised."""

    def __init__(self, message: str, selector: Optional[AudienceSelector] = None):
        super().__init__(message)
        self.selector = selector


class PartialFanoutError(BroadcastServiceError):
    """Raised by FanoutReport.raise_for_failures()"""

    def __init__(self, report: FanoutReport):
        super().__init__(
            f"Fan-out for campaign {report.campaign_id} failed for "
            f"{len(report.failed)} of {report.requested} recipients"
        )
        self.report = report


class SubscriptionError(BroadcastServiceError):
    """Live subscription failed; delivered to on_error, never retried"""

    def __init__(self, message: str, subscription: Optional[str] = None):
        super().__init__(message)
        self.subscription = subscription


class CampaignNotFoundError(BroadcastServiceError):
    """Raised when campaign is not found"""
    pass


class DeliveryNotFoundError(BroadcastServiceError):
    """Raised when a delivery record is not found"""
    pass


class DeliveryOwnershipError(BroadcastServiceError):
    """Raised when someone other than the owner reads or mutates an inbox or delivery record"""

    def __init__(self, message: str, delivery_id: Optional[str] = None, actor_id: Optional[str] = None):
        super().__init__(message)
        self.delivery_id = delivery_id
        self.actor_id = actor_id


class BroadcastValidationError(BroadcastServiceError):
    """Raised when broadcast input validation fails"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


__all__ = [
    "CampaignRepositoryProtocol",
    "DeliveryRepositoryProtocol",
    "EventBusProtocol",
    "DirectoryClientProtocol",
    "AuthorizationClientProtocol",
    "PushGatewayProtocol",
    "BroadcastServiceError",
    "AuthorizationError",
    "AudienceResolutionError",
    "ResolutionWarning",
    "PartialFanoutError",
    "SubscriptionError",
    "CampaignNotFoundError",
    "DeliveryNotFoundError",
    "DeliveryOwnershipError",
    "BroadcastValidationError",
]
