"""
Configuration Manager

Per-service configuration entry point. Resolves infrastructure settings and
peer service endpoints from the environment.

Usage:
    from core.config_manager import ConfigManager

    config = ConfigManager("broadcast_service")
    host, port = config.discover_service(
        service_name="postgres_service",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from typing import Dict, Optional, Tuple

from .config import InfraConfig, LoggingConfig

logger = logging.getLogger(__name__)


# Default ports for peer services (port registry)
DEFAULT_SERVICE_PORTS: Dict[str, int] = {
    "account_service": 8202,
    "authorization_service": 8204,
    "notification_service": 8206,
    "broadcast_service": 8260,
}


class ConfigManager:
    """Configuration for a single service"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.infra = InfraConfig.from_env()
        self.logging = LoggingConfig.from_env()

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Discover host/port for a dependency.

        Priority: explicit environment keys -> defaults.
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port_value = os.getenv(env_port_key) if env_port_key else None

        try:
            port = int(port_value) if port_value else default_port
        except ValueError:
            logger.warning(f"Invalid port '{port_value}' for {service_name}, using {default_port}")
            port = default_port

        return host or default_host, port

    def get_service_endpoint(self, service_name: str) -> Optional[str]:
        """
        Get base URL of a peer service.

        Reads ``<SERVICE_NAME>_URL`` (e.g. ``ACCOUNT_SERVICE_URL``) first, then
        falls back to localhost on the registered port.
        """
        url = os.getenv(f"{service_name.upper()}_URL")
        if url:
            return url.rstrip("/")

        port = DEFAULT_SERVICE_PORTS.get(service_name)
        if port is None:
            return None
        return f"http://localhost:{port}"

    def get_service_config(self) -> Dict[str, str]:
        """Summary used for startup logging"""
        return {
            "service_name": self.service_name,
            "environment": self.logging.environment,
            "postgres": f"{self.infra.postgres_host}:{self.infra.postgres_port}/{self.infra.postgres_db}",
            "nats": self.infra.nats_servers,
        }
