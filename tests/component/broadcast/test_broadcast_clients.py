"""
Component Tests for the directory, authorization and push clients

HTTP clients run against httpx.MockTransport.
"""

import json

import httpx
import pytest

from microservices.broadcast_service.clients.authorization_client import AuthorizationClient
from microservices.broadcast_service.clients.directory_client import DirectoryClient
from microservices.broadcast_service.clients.push_gateway import LoggingPushGateway
from microservices.broadcast_service.models import Campaign
from microservices.broadcast_service.protocols import AuthorizationError

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


def http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://service.test", transport=httpx.MockTransport(handler))


class TestDirectoryClient:

    async def test_walks_every_page(self, mock_config):
        pages = {
            "1": {"accounts": [{"user_id": "usr_1"}, {"user_id": "usr_2"}], "has_next": True},
            "2": {"accounts": [{"user_id": "usr_3"}, {"email": "no-id@example.com"}], "has_next": False},
        }
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=pages[request.url.params["page"]])

        client = DirectoryClient(mock_config, http_client=http_client(handler))

        user_ids = await client.list_all_user_ids()

        assert user_ids == ["usr_1", "usr_2", "usr_3"]
        assert [p["page"] for p in seen] == ["1", "2"]
        assert seen[0]["page_size"] == "100"
        await client.close()

    async def test_role_filter_is_sent(self, mock_config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params.get("role"))
            return httpx.Response(200, json={"accounts": [{"user_id": "usr_donor"}], "has_next": False})

        client = DirectoryClient(mock_config, http_client=http_client(handler))

        assert await client.list_user_ids_by_role("donor") == ["usr_donor"]
        assert seen == ["donor"]

    async def test_server_error_propagates(self, mock_config):
        client = DirectoryClient(mock_config, http_client=http_client(lambda request: httpx.Response(503)))

        with pytest.raises(httpx.HTTPStatusError):
            await client.list_all_user_ids()

    async def test_base_url_from_config(self, mock_config):
        client = DirectoryClient(mock_config, http_client=http_client(lambda request: httpx.Response(200)))

        assert client.base_url == "http://account.test"
        mock_config.get_service_endpoint.assert_called_with("account_service")


class TestAuthorizationClient:

    async def test_granted_access_returns_context(self, mock_config):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"has_access": True})

        client = AuthorizationClient(mock_config, http_client=http_client(handler))

        context = await client.authorize_broadcaster("adm_1")

        assert context.actor_id == "adm_1"
        assert context.can_broadcast
        assert bodies == [{
            "user_id": "adm_1",
            "resource_type": "broadcast",
            "resource_id": "campaigns",
            "permission": "admin",
        }]

    async def test_denied_access_raises(self, mock_config):
        client = AuthorizationClient(
            mock_config,
            http_client=http_client(lambda request: httpx.Response(200, json={"has_access": False})),
        )

        with pytest.raises(AuthorizationError) as exc_info:
            await client.authorize_broadcaster("usr_donor_1")

        assert exc_info.value.actor_id == "usr_donor_1"

    async def test_unreachable_service_fails_closed(self, mock_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = AuthorizationClient(mock_config, http_client=http_client(handler))

        with pytest.raises(AuthorizationError):
            await client.authorize_broadcaster("adm_1")

    async def test_missing_actor_is_rejected(self, mock_config):
        client = AuthorizationClient(mock_config, http_client=http_client(lambda request: httpx.Response(200)))

        with pytest.raises(AuthorizationError):
            await client.authorize_broadcaster("")


class TestLoggingPushGateway:

    async def test_notify_reports_not_delivered(self):
        campaign = Campaign(campaign_id="cmp_1", title="t", body="b", created_by="adm_1")

        assert await LoggingPushGateway().notify(["usr_1"], campaign) is False
