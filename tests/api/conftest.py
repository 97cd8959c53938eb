"""
API Test Layer Configuration

HTTP contract tests against the FastAPI app through httpx.ASGITransport.
The service dependency is overridden with a TakeoverService wired to the
component-layer mocks, so no server, database or NATS is needed.

Usage:
    pytest tests/api -v
"""
import httpx
import pytest

from core.config import TakeoverConfig
from microservices.takeover_service.main import app, get_takeover_service
from microservices.takeover_service.takeover_service import TakeoverService
from tests.component.mocks import MockEventBus, MockMintClient, MockTakeoverRepository


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "api: marks tests as API contract tests"
    )


@pytest.fixture
def mock_repository() -> MockTakeoverRepository:
    return MockTakeoverRepository()


@pytest.fixture
def mock_mint_client() -> MockMintClient:
    return MockMintClient()


@pytest.fixture
def api_service(mock_repository, mock_mint_client, clock) -> TakeoverService:
    return TakeoverService(
        repository=mock_repository,
        mint_client=mock_mint_client,
        event_bus=MockEventBus(),
        config=TakeoverConfig(),
        clock=clock,
    )


@pytest.fixture
async def http_client(api_service):
    """Async HTTP client bound to the app with the mocked service injected"""
    app.dependency_overrides[get_takeover_service] = lambda: api_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://takeover.test") as client:
        yield client
    app.dependency_overrides.clear()
