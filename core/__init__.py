#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components used by the microservices in this repository.

COMPONENTS:
    - config/: Environment-driven configuration dataclasses
    - config_manager.py: Per-service configuration and service discovery
    - auth_dependencies.py: Caller identity dependencies for FastAPI routes
    - logger.py: Service logger setup
    - nats_client.py: NATS event bus for event-driven architecture
    - postgres_client.py: asyncpg connection pool wrapper

USAGE:
    from core.config_manager import ConfigManager
    from core.nats_client import NATSEventBus

    config = ConfigManager("broadcast_service")
    event_bus = NATSEventBus("broadcast_service", config=config)
    await event_bus.connect()
"""

from .config_manager import ConfigManager
from .logger import setup_service_logger

__all__ = [
    "ConfigManager",
    "setup_service_logger",
]
