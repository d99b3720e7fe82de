"""
Event handlers for Broadcast Service
"""

# Only export what's needed, handlers are imported lazily in factory.py
from . import models
from .publishers import BroadcastEventPublishers

__all__ = [
    "BroadcastEventPublishers",
    "models",
]
