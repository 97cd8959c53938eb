"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── takeover/    Takeover service components
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/takeover -v
"""
import pytest

from tests.component.mocks import MockEventBus, MockMintClient, MockTakeoverRepository


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_mint_client() -> MockMintClient:
    """Mock mint issuance service"""
    return MockMintClient()


@pytest.fixture
def mock_repository() -> MockTakeoverRepository:
    """In-memory takeover repository"""
    return MockTakeoverRepository()
