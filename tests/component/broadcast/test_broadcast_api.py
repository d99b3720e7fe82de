"""
Component Tests for the Broadcast Service HTTP and WebSocket API

Uses FastAPI TestClient with the service and authorization client replaced
through dependency overrides (the lifespan, and so Postgres/NATS, never runs).
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from core.auth_dependencies import INTERNAL_SERVICE_SECRET
from microservices.broadcast_service import main
from microservices.broadcast_service.main import app, get_authorization_client, get_service

pytestmark = pytest.mark.component

ADMIN = {"X-User-Id": "adm_1"}

INTERNAL = {"X-Internal-Service": "true", "X-Internal-Service-Secret": INTERNAL_SERVICE_SECRET}

DONOR_BROADCAST = {
    "title": "Urgent: O- Needed",
    "body": "City hospital needs O- donors today.",
    "category": "urgent",
    "audience": {"kind": "segment", "role": "donor"},
}


@pytest.fixture
def client(broadcast_service, authorization_client):
    app.dependency_overrides[get_service] = lambda: broadcast_service
    app.dependency_overrides[get_authorization_client] = lambda: authorization_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def campaign_id(client):
    response = client.post("/api/v1/broadcasts", json=DONOR_BROADCAST, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()["campaign"]["campaign_id"]


def as_user(user_id):
    return {"X-User-Id": user_id}


def inbox_of(client, recipient_id):
    response = client.get(f"/api/v1/inbox/{recipient_id}", headers=as_user(recipient_id))
    assert response.status_code == 200
    return response.json()


# ====================
# Health
# ====================


class TestHealth:

    def test_health_without_factory(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "broadcast_service"
        assert body["status"] == "healthy"

    def test_info_lists_routes(self, client):
        body = client.get("/api/v1/broadcasts/info").json()

        assert body["service_name"] == "broadcast_service"
        assert "/ws/admin/feed" in body["routes"]

    def test_unconfigured_service_returns_503(self):
        assert main.factory is None
        response = TestClient(app).get("/api/v1/inbox/usr_1", headers=as_user("usr_1"))

        assert response.status_code == 503


# ====================
# Broadcasts
# ====================


class TestBroadcastEndpoints:

    def test_send_broadcast(self, client):
        response = client.post("/api/v1/broadcasts", json=DONOR_BROADCAST, headers=ADMIN)

        assert response.status_code == 201
        body = response.json()
        assert body["campaign"]["campaign_id"].startswith("cmp_")
        assert body["campaign"]["created_by"] == "adm_1"
        assert body["report"]["succeeded"] == 3
        assert body["warnings"] == []

    def test_missing_identity_is_forbidden(self, client):
        response = client.post("/api/v1/broadcasts", json=DONOR_BROADCAST)

        assert response.status_code == 403

    def test_non_admin_is_forbidden(self, client, campaign_repository):
        response = client.post("/api/v1/broadcasts", json=DONOR_BROADCAST, headers={"X-User-Id": "usr_donor_1"})

        assert response.status_code == 403
        assert campaign_repository.campaigns == {}

    def test_empty_audience_returns_warning(self, client):
        payload = {**DONOR_BROADCAST, "audience": {"kind": "segment", "role": "courier"}}

        response = client.post("/api/v1/broadcasts", json=payload, headers=ADMIN)

        assert response.status_code == 201
        assert response.json()["report"]["succeeded"] == 0
        assert "zero recipients" in response.json()["warnings"][0]

    def test_invalid_payload_is_rejected(self, client):
        payload = {**DONOR_BROADCAST, "title": ""}

        response = client.post("/api/v1/broadcasts", json=payload, headers=ADMIN)

        assert response.status_code == 422

    def test_segment_without_role_is_rejected(self, client):
        payload = {**DONOR_BROADCAST, "audience": {"kind": "segment"}}

        response = client.post("/api/v1/broadcasts", json=payload, headers=ADMIN)

        assert response.status_code == 422

    def test_directory_outage_returns_502(self, client, directory_client):
        directory_client.error = ConnectionError("account service down")

        response = client.post("/api/v1/broadcasts", json=DONOR_BROADCAST, headers=ADMIN)

        assert response.status_code == 502

    def test_get_and_list_campaigns(self, client, campaign_id):
        assert client.get(f"/api/v1/broadcasts/{campaign_id}").json()["title"] == "Urgent: O- Needed"

        listing = client.get("/api/v1/broadcasts").json()
        assert listing["total"] == 1
        assert listing["campaigns"][0]["campaign_id"] == campaign_id

    def test_unknown_campaign_returns_404(self, client):
        assert client.get("/api/v1/broadcasts/cmp_missing").status_code == 404

    def test_fanout_extra_recipients(self, client, campaign_id):
        response = client.post(
            f"/api/v1/broadcasts/{campaign_id}/fanout",
            json={"recipient_ids": ["usr_donor_1", "usr_late_signup"]},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["succeeded"] == 1
        assert response.json()["skipped"] == 1

    def test_cascade_delete(self, client, campaign_id):
        response = client.delete(f"/api/v1/broadcasts/{campaign_id}", headers=ADMIN)

        assert response.status_code == 200
        assert response.json() == {"campaign_id": campaign_id, "deleted_count": 3}
        assert inbox_of(client, "usr_donor_1")["deliveries"] == []

        retry = client.post(
            f"/api/v1/broadcasts/{campaign_id}/fanout", json={"recipient_ids": ["usr_x"]}, headers=ADMIN
        )
        assert retry.status_code == 422
        assert retry.json()["field"] == "campaign_id"


# ====================
# Admin feed
# ====================


class TestAdminEndpoints:

    def test_admin_feed(self, client, campaign_id):
        response = client.get("/api/v1/broadcasts/admin/feed", headers=ADMIN)

        assert response.status_code == 200
        summary = response.json()["summaries"][0]
        assert summary["campaign_id"] == campaign_id
        assert summary["total_sent"] == 3
        assert summary["read_count"] == 0

    def test_admin_feed_requires_admin(self, client):
        assert client.get("/api/v1/broadcasts/admin/feed").status_code == 403

    def test_dashboard(self, client, campaign_id):
        response = client.get("/api/v1/broadcasts/admin/dashboard", headers=ADMIN)

        assert response.json() == {"total_campaigns": 1, "live_deliveries": 3, "unread_deliveries": 3}


# ====================
# Inbox
# ====================


class TestInboxEndpoints:

    def test_inbox_and_unread_count(self, client, campaign_id):
        inbox = inbox_of(client, "usr_donor_1")

        assert inbox["unread_count"] == 1
        assert inbox["deliveries"][0]["campaign_id"] == campaign_id
        assert inbox["deliveries"][0]["deleted"] is False
        assert client.get("/api/v1/inbox/usr_donor_1/unread-count", headers=as_user("usr_donor_1")).json()["unread_count"] == 1

    def test_mark_read_is_idempotent(self, client, campaign_id):
        delivery_id = inbox_of(client, "usr_donor_1")["deliveries"][0]["delivery_id"]
        owner = {"X-User-Id": "usr_donor_1"}

        first = client.post(f"/api/v1/inbox/deliveries/{delivery_id}/read", headers=owner)
        second = client.post(f"/api/v1/inbox/deliveries/{delivery_id}/read", headers=owner)

        assert first.json() == {"delivery_id": delivery_id, "changed": True}
        assert second.json() == {"delivery_id": delivery_id, "changed": False}
        unread = client.post(f"/api/v1/inbox/deliveries/{delivery_id}/unread", headers=owner)
        assert unread.json()["changed"] is True

    def test_other_user_cannot_mutate(self, client, campaign_id):
        delivery_id = inbox_of(client, "usr_donor_1")["deliveries"][0]["delivery_id"]

        response = client.delete(f"/api/v1/inbox/deliveries/{delivery_id}", headers={"X-User-Id": "usr_donor_2"})

        assert response.status_code == 403
        assert inbox_of(client, "usr_donor_1")["deliveries"]

    def test_soft_delete(self, client, campaign_id):
        delivery_id = inbox_of(client, "usr_donor_2")["deliveries"][0]["delivery_id"]

        response = client.delete(f"/api/v1/inbox/deliveries/{delivery_id}", headers={"X-User-Id": "usr_donor_2"})

        assert response.json()["changed"] is True
        assert inbox_of(client, "usr_donor_2")["deliveries"] == []
        assert len(inbox_of(client, "usr_donor_3")["deliveries"]) == 1

    def test_unknown_delivery_returns_404(self, client):
        assert client.post("/api/v1/inbox/deliveries/dlv_missing/read", headers=as_user("usr_donor_1")).status_code == 404

    def test_read_all_and_clear(self, client, campaign_id):
        owner = {"X-User-Id": "usr_donor_1"}

        read_all = client.post("/api/v1/inbox/usr_donor_1/read-all", headers=owner)
        cleared = client.post("/api/v1/inbox/usr_donor_1/clear", headers=owner)

        assert read_all.json() == {"recipient_id": "usr_donor_1", "count": 1}
        assert cleared.json() == {"recipient_id": "usr_donor_1", "count": 1}
        assert inbox_of(client, "usr_donor_1")["deliveries"] == []

    def test_bulk_mutation_of_other_inbox_is_forbidden(self, client, campaign_id):
        response = client.post("/api/v1/inbox/usr_donor_1/clear", headers={"X-User-Id": "usr_donor_2"})

        assert response.status_code == 403

    def test_anonymous_bulk_mutation_is_rejected(self, client, campaign_id, delivery_repository):
        read_all = client.post("/api/v1/inbox/usr_donor_1/read-all")
        cleared = client.post("/api/v1/inbox/usr_donor_1/clear")

        assert read_all.status_code == 401
        assert cleared.status_code == 401
        [record] = delivery_repository.for_recipient("usr_donor_1")
        assert record.read is False
        assert record.deleted is False

    def test_anonymous_delivery_mutation_is_rejected(self, client, campaign_id):
        delivery_id = inbox_of(client, "usr_donor_1")["deliveries"][0]["delivery_id"]

        assert client.post(f"/api/v1/inbox/deliveries/{delivery_id}/read").status_code == 401
        assert client.post(f"/api/v1/inbox/deliveries/{delivery_id}/unread").status_code == 401
        assert client.delete(f"/api/v1/inbox/deliveries/{delivery_id}").status_code == 401
        assert inbox_of(client, "usr_donor_1")["unread_count"] == 1

    def test_anonymous_inbox_read_is_rejected(self, client, campaign_id):
        assert client.get("/api/v1/inbox/usr_donor_1").status_code == 401
        assert client.get("/api/v1/inbox/usr_donor_1/unread-count").status_code == 401

    def test_other_user_cannot_read_inbox(self, client, campaign_id):
        response = client.get("/api/v1/inbox/usr_donor_1", headers=as_user("usr_donor_2"))

        assert response.status_code == 403

    def test_wrong_internal_secret_is_anonymous(self, client, campaign_id):
        headers = {"X-Internal-Service": "true", "X-Internal-Service-Secret": "guess"}

        assert client.post("/api/v1/inbox/usr_donor_1/clear", headers=headers).status_code == 401

    def test_internal_service_acts_without_ownership(self, client, campaign_id):
        delivery_id = inbox_of(client, "usr_donor_1")["deliveries"][0]["delivery_id"]

        marked = client.post(f"/api/v1/inbox/deliveries/{delivery_id}/read", headers=INTERNAL)
        inbox = client.get("/api/v1/inbox/usr_donor_1", headers=INTERNAL)

        assert marked.json()["changed"] is True
        assert inbox.status_code == 200
        assert inbox.json()["unread_count"] == 0


# ====================
# WebSockets
# ====================


class TestWebSockets:

    def test_inbox_stream_sends_initial_snapshot(self, client, campaign_id):
        with client.websocket_connect("/ws/inbox/usr_donor_1", headers=as_user("usr_donor_1")) as ws:
            frame = ws.receive_json()

        assert frame["type"] == "snapshot"
        assert len(frame["data"]) == 1
        assert frame["data"][0]["campaign_id"] == campaign_id

    def test_admin_feed_stream_requires_admin(self, client):
        with client.websocket_connect("/ws/admin/feed") as ws:
            frame = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert frame["type"] == "error"
        assert exc_info.value.code == 4403

    def test_admin_feed_stream_snapshot(self, client, campaign_id):
        with client.websocket_connect("/ws/admin/feed", headers=ADMIN) as ws:
            frame = ws.receive_json()

        assert frame["type"] == "snapshot"
        assert frame["data"][0]["total_sent"] == 3

    def test_dashboard_stream_accepts_query_identity(self, client, campaign_id):
        with client.websocket_connect("/ws/admin/dashboard?user_id=adm_1") as ws:
            frame = ws.receive_json()

        assert frame["data"]["total_campaigns"] == 1

    def test_store_failure_sends_error_frame(self, client, delivery_repository):
        delivery_repository.read_error = ConnectionError("store unavailable")

        with client.websocket_connect("/ws/inbox/usr_donor_1", headers=as_user("usr_donor_1")) as ws:
            frame = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert frame["type"] == "error"
        assert exc_info.value.code == 1011

    def test_inbox_stream_requires_identity(self, client, campaign_id):
        with client.websocket_connect("/ws/inbox/usr_donor_1") as ws:
            frame = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert frame["type"] == "error"
        assert exc_info.value.code == 4401

    def test_inbox_stream_of_other_user_is_forbidden(self, client, campaign_id):
        with client.websocket_connect("/ws/inbox/usr_donor_1", headers=as_user("usr_donor_2")) as ws:
            frame = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert frame["type"] == "error"
        assert exc_info.value.code == 4403
