"""
NATS Client for Python Microservices
Provides event-driven communication between service instances

This module wraps the nats-py client: durable events go through JetStream,
transient change notifications through core NATS subjects.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types"""

    # Broadcast Events
    BROADCAST_CAMPAIGN_CREATED = "broadcast.campaign.created"
    BROADCAST_CAMPAIGN_RETIRED = "broadcast.campaign.retired"
    BROADCAST_FANOUT_COMPLETED = "broadcast.fanout.completed"
    BROADCAST_DELIVERY_CHANGED = "broadcast.delivery.changed"


class ServiceSource(Enum):
    """Service sources"""

    BROADCAST_SERVICE = "broadcast_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


EventHandler = Callable[[Event], Awaitable[None]]


class NATSEventBus:
    """
    NATS event bus.

    Subjects listed in STREAM_SUBJECTS are persisted through JetStream,
    everything else is published on core NATS (fire-and-forget).
    """

    # stream name -> subjects persisted in that stream
    STREAM_SUBJECTS: Dict[str, List[str]] = {
        "broadcast-stream": ["broadcast.campaign.>", "broadcast.fanout.>"],
    }

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as connection name)
            config: Optional ConfigManager instance for service discovery
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)

        self.servers = config.infra.nats_servers

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._subscriptions: Dict[str, Any] = {}  # pattern -> nats subscription
        self._ready_streams: set = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.servers}")

    async def connect(self):
        """Connect to NATS"""
        try:
            self._nc = await nats.connect(
                servers=self.servers,
                name=self.service_name,
            )
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    def _get_stream_name_for_event(self, event_type: str) -> Optional[str]:
        """Return the JetStream stream persisting this event type, if any"""
        for stream_name, subjects in self.STREAM_SUBJECTS.items():
            for pattern in subjects:
                prefix = pattern.rstrip(">").rstrip(".")
                if event_type == prefix or event_type.startswith(prefix + "."):
                    return stream_name
        return None

    async def _ensure_stream(self, stream_name: str) -> None:
        if stream_name in self._ready_streams:
            return
        try:
            await self._js.add_stream(
                name=stream_name,
                subjects=self.STREAM_SUBJECTS[stream_name],
                max_msgs=100000,
            )
        except Exception as e:
            logger.debug(f"Stream creation note: {e}")
        self._ready_streams.add(stream_name)

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event.

        Uses event.type as subject (e.g. "broadcast.campaign.created").
        Durable event types go to their JetStream stream; others are
        published on core NATS.
        """
        if not self._is_connected or not self._nc:
            logger.error("Not connected to NATS")
            return False

        try:
            subject = event.type
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()

            stream_name = self._get_stream_name_for_event(event.type)
            if stream_name:
                await self._ensure_stream(stream_name)
                ack = await self._js.publish(subject, data, stream=stream_name)
                logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            else:
                await self._nc.publish(subject, data)
                logger.debug(f"Published event {event.type} [{event.id}]")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: EventHandler, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a pattern.

        Args:
            pattern: Subject pattern to subscribe to (e.g., "broadcast.delivery.*")
            handler: Async callback function to handle events
            durable: Optional durable consumer name (JetStream subjects only)
        """
        if not self._is_connected or not self._nc:
            logger.error("Not connected to NATS")
            return None

        async def _on_message(msg):
            try:
                event = Event.from_dict(json.loads(msg.data.decode()))
                await handler(event)
            except Exception as e:
                logger.error(f"Error processing message on {msg.subject}: {e}")

        try:
            if durable:
                subscription = await self._js.subscribe(pattern, durable=durable, cb=_on_message)
            else:
                subscription = await self._nc.subscribe(pattern, cb=_on_message)
            self._subscriptions[pattern] = subscription
            logger.info(f"Subscribed to {pattern}")
            return durable or pattern

        except Exception as e:
            logger.error(f"Error subscribing to events: {e}")
            return None

    async def unsubscribe(self, pattern: str) -> bool:
        """Unsubscribe from a pattern"""
        subscription = self._subscriptions.pop(pattern, None)
        if subscription is None:
            return False
        await subscription.unsubscribe()
        logger.info(f"Unsubscribed from {pattern}")
        return True

    async def close(self):
        """Close NATS connection"""
        for pattern in list(self._subscriptions.keys()):
            await self.unsubscribe(pattern)

        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected
