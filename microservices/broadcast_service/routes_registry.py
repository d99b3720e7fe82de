"""
Broadcast Service Routes Registry

Defines service metadata and the route table exposed by the service info endpoint.
"""

SERVICE_METADATA = {
    "service_name": "broadcast_service",
    "version": "1.0.0",
    "tags": ["broadcast", "notification", "v1"],
    "capabilities": [
        "broadcast_campaigns",
        "audience_fanout",
        "recipient_inbox",
        "admin_feed",
        "live_subscriptions",
    ],
}

ROUTES = [
    {"path": "/health", "methods": ["GET"], "description": "Health check"},
    {"path": "/api/v1/broadcasts/info", "methods": ["GET"], "description": "Service info"},
    {"path": "/api/v1/broadcasts", "methods": ["GET", "POST"], "description": "List or send broadcasts"},
    {"path": "/api/v1/broadcasts/admin/feed", "methods": ["GET"], "description": "Admin per-campaign summaries"},
    {"path": "/api/v1/broadcasts/admin/dashboard", "methods": ["GET"], "description": "Dashboard counters"},
    {"path": "/api/v1/broadcasts/{campaign_id}", "methods": ["GET", "DELETE"], "description": "Get or cascade-delete a campaign"},
    {"path": "/api/v1/broadcasts/{campaign_id}/fanout", "methods": ["POST"], "description": "Re-run fan-out for recipients"},
    {"path": "/api/v1/inbox/{recipient_id}", "methods": ["GET"], "description": "Recipient inbox"},
    {"path": "/api/v1/inbox/{recipient_id}/unread-count", "methods": ["GET"], "description": "Unread count"},
    {"path": "/api/v1/inbox/{recipient_id}/read-all", "methods": ["POST"], "description": "Mark all read"},
    {"path": "/api/v1/inbox/{recipient_id}/clear", "methods": ["POST"], "description": "Clear inbox"},
    {"path": "/api/v1/inbox/deliveries/{delivery_id}/read", "methods": ["POST"], "description": "Mark read"},
    {"path": "/api/v1/inbox/deliveries/{delivery_id}/unread", "methods": ["POST"], "description": "Mark unread"},
    {"path": "/api/v1/inbox/deliveries/{delivery_id}", "methods": ["DELETE"], "description": "Soft delete"},
    {"path": "/ws/inbox/{recipient_id}", "methods": ["WS"], "description": "Live inbox"},
    {"path": "/ws/admin/feed", "methods": ["WS"], "description": "Live admin feed"},
    {"path": "/ws/admin/dashboard", "methods": ["WS"], "description": "Live dashboard counters"},
]


def get_routes_summary():
    """Get route metadata for service info"""
    return {
        "route_count": str(len(ROUTES)),
        "routes": ",".join([r["path"] for r in ROUTES]),
        "api_version": "v1",
        "base_path": "/api/v1/broadcasts",
    }


__all__ = ["SERVICE_METADATA", "ROUTES", "get_routes_summary"]
