"""
Broadcast Service

Notification distribution and aggregation engine providing:
- Admin broadcast campaigns targeted at audience segments
- Fan-out into one delivery record per recipient
- Live per-recipient inboxes (read, unread, soft delete, clear)
- Live admin feed with per-campaign sent/read counts and dashboard counters

Port: 8260
"""

__version__ = "1.0.0"
__service__ = "broadcast_service"
