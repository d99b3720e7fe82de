#!/usr/bin/env python3
"""Broadcast service configuration

Limits and toggles for the broadcast engine: inbox/feed caps, fan-out
concurrency, legacy grouping key length and event bus wiring.
"""
import os
from dataclasses import dataclass

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass(frozen=True)
class BroadcastSettings:
    """Broadcast service settings"""

    # ===========================================
    # Projections
    # ===========================================
    inbox_limit: int = 50
    admin_feed_limit: int = 50

    # ===========================================
    # Fan-out
    # ===========================================
    fanout_concurrency: int = 50

    # Characters of title/body used by the legacy grouping key
    legacy_key_length: int = 64

    # ===========================================
    # Runtime
    # ===========================================
    nats_enabled: bool = True
    auto_migrate: bool = True
    service_port: int = 8260

    @classmethod
    def from_env(cls) -> 'BroadcastSettings':
        """Load broadcast settings from environment variables"""
        return cls(
            inbox_limit=_int(os.getenv("BROADCAST_INBOX_LIMIT", "50"), 50),
            admin_feed_limit=_int(os.getenv("BROADCAST_ADMIN_FEED_LIMIT", "50"), 50),
            fanout_concurrency=max(1, _int(os.getenv("BROADCAST_FANOUT_CONCURRENCY", "50"), 50)),
            legacy_key_length=_int(os.getenv("BROADCAST_LEGACY_KEY_LENGTH", "64"), 64),
            nats_enabled=_bool(os.getenv("NATS_ENABLED", "true")),
            auto_migrate=_bool(os.getenv("BROADCAST_AUTO_MIGRATE", "true")),
            service_port=_int(os.getenv("SERVICE_PORT", "8260"), 8260),
        )
