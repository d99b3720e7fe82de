"""
Unit Tests for ConfigManager and InfraConfig
"""

import pytest

from core.auth_dependencies import (
    INTERNAL_SERVICE_SECRET,
    INTERNAL_SERVICE_USER,
    is_internal_service_request,
    resolve_caller,
)
from core.config import InfraConfig
from core.config_manager import ConfigManager

pytestmark = pytest.mark.unit


class TestServiceEndpoints:

    def test_env_url_wins(self, monkeypatch):
        monkeypatch.setenv("ACCOUNT_SERVICE_URL", "http://accounts.internal:9000/")

        assert ConfigManager("broadcast_service").get_service_endpoint("account_service") == \
            "http://accounts.internal:9000"

    def test_registered_port_fallback(self, monkeypatch):
        monkeypatch.delenv("AUTHORIZATION_SERVICE_URL", raising=False)

        assert ConfigManager("broadcast_service").get_service_endpoint("authorization_service") == \
            "http://localhost:8204"

    def test_unknown_service(self, monkeypatch):
        monkeypatch.delenv("MYSTERY_SERVICE_URL", raising=False)

        assert ConfigManager("broadcast_service").get_service_endpoint("mystery_service") is None

    def test_discover_service_ignores_bad_port(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        monkeypatch.setenv("POSTGRES_PORT", "not-a-port")

        host, port = ConfigManager("broadcast_service").discover_service(
            "postgres", "localhost", 5432, env_host_key="POSTGRES_HOST", env_port_key="POSTGRES_PORT"
        )

        assert (host, port) == ("db.internal", 5432)


class TestInfraConfig:

    def test_dsn_and_nats_servers(self):
        config = InfraConfig(postgres_host="db", postgres_db="broadcast", nats_host="bus", nats_port=4333)

        assert config.postgres_dsn == "postgresql://postgres:postgres@db:5432/broadcast"
        assert config.nats_servers == "nats://bus:4333"

    def test_nats_url_overrides_host(self):
        assert InfraConfig(nats_url="nats://cluster:4222").nats_servers == "nats://cluster:4222"


class TestResolveCaller:

    def test_user_header(self):
        assert resolve_caller("usr_1") == "usr_1"

    def test_missing_identity(self):
        assert resolve_caller(None) is None
        assert resolve_caller("") is None

    def test_internal_service(self):
        caller = resolve_caller(None, "true", INTERNAL_SERVICE_SECRET)

        assert caller == INTERNAL_SERVICE_USER
        assert is_internal_service_request(caller)

    def test_bad_secret_falls_back_to_user(self):
        assert resolve_caller("usr_1", "true", "wrong") == "usr_1"
        assert resolve_caller(None, "true", "wrong") is None

    def test_user_is_not_internal(self):
        assert not is_internal_service_request("usr_1")
