"""
Component Test Fixtures for Broadcast Service

Wires BroadcastService to in-memory repositories and mock clients.
"""

import pytest
import pytest_asyncio

from core.config import BroadcastSettings
from microservices.broadcast_service.broadcast_service import BroadcastService
from microservices.broadcast_service.events.publishers import BroadcastEventPublishers
from microservices.broadcast_service.live_feed import ChangeFeed

from tests.component.broadcast.mocks import (
    InMemoryCampaignRepository,
    InMemoryDeliveryRepository,
    MockAuthorizationClient,
    MockDirectoryClient,
    RecordingPushGateway,
    SnapshotRecorder,
    _Clock,
    make_context,
)

ADMIN_ID = "adm_1"

# Blood donation directory: donors, recipients and one admin
DIRECTORY_USERS = {
    "usr_donor_1": ["donor"],
    "usr_donor_2": ["donor"],
    "usr_donor_3": ["donor"],
    "usr_recipient_1": ["recipient"],
    ADMIN_ID: ["admin"],
}


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def campaign_repository(clock) -> InMemoryCampaignRepository:
    return InMemoryCampaignRepository(clock)


@pytest.fixture
def delivery_repository(clock) -> InMemoryDeliveryRepository:
    return InMemoryDeliveryRepository(clock)


@pytest.fixture
def directory_client() -> MockDirectoryClient:
    return MockDirectoryClient(DIRECTORY_USERS)


@pytest.fixture
def authorization_client() -> MockAuthorizationClient:
    return MockAuthorizationClient(admins=[ADMIN_ID])


@pytest.fixture
def push_gateway() -> RecordingPushGateway:
    return RecordingPushGateway()


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed()


@pytest_asyncio.fixture
async def live_feed(change_feed):
    """Change feed whose live subscriptions are cancelled after the test"""
    yield change_feed
    await change_feed.close()


@pytest.fixture
def event_publishers(mock_event_bus) -> BroadcastEventPublishers:
    return BroadcastEventPublishers(mock_event_bus, instance_id="broadcast_service-test")


@pytest.fixture
def settings() -> BroadcastSettings:
    return BroadcastSettings(nats_enabled=False)


@pytest.fixture
def broadcast_service(
    campaign_repository,
    delivery_repository,
    directory_client,
    change_feed,
    event_publishers,
    push_gateway,
    settings,
) -> BroadcastService:
    return BroadcastService(
        campaign_repository=campaign_repository,
        delivery_repository=delivery_repository,
        directory_client=directory_client,
        change_feed=change_feed,
        event_publishers=event_publishers,
        push_gateway=push_gateway,
        settings=settings,
    )


@pytest.fixture
def admin_context():
    return make_context(ADMIN_ID)


@pytest.fixture
def recorder() -> SnapshotRecorder:
    return SnapshotRecorder()
