"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── broadcast/   Broadcast engine with in-memory repositories
    └── mocks/       Shared mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/broadcast -v
"""
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

# Load test environment variables
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent.parent
test_env_file = project_root / "tests" / "config" / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file, override=True)

from tests.component.mocks import MockEventBus, MockPostgresClient


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Database Mocks
# =============================================================================

@pytest.fixture
def mock_db() -> MockPostgresClient:
    """Mock PostgreSQL client"""
    return MockPostgresClient()


# =============================================================================
# Event Bus Mocks
# =============================================================================

@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


# =============================================================================
# Config Mocks
# =============================================================================

@pytest.fixture
def mock_config() -> MagicMock:
    """Mock ConfigManager"""
    config = MagicMock()
    config.get_service_endpoint = MagicMock(return_value="http://account.test")
    config.discover_service = MagicMock(return_value=("localhost", 8202))
    return config
