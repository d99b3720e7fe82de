"""
Clients module for broadcast_service

HTTP clients for synchronous service-to-service communication
"""

from .authorization_client import AuthorizationClient
from .directory_client import DirectoryClient
from .push_gateway import LoggingPushGateway

__all__ = [
    "AuthorizationClient",
    "DirectoryClient",
    "LoggingPushGateway",
]
